"""Password hashing and signed bearer tokens for the account flow."""
import base64
import binascii
import hashlib
import hmac
import json
import time
from typing import Any, Dict, Optional

import config

_HEADER = {"alg": "HS256", "typ": "JWT"}


class TokenError(ValueError):
    pass


def _encode_part(data: Dict[str, Any]) -> str:
    raw = json.dumps(data, separators=(",", ":")).encode()
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode()


def _decode_part(part: str) -> Dict[str, Any]:
    try:
        raw = base64.urlsafe_b64decode(part + "=" * (-len(part) % 4))
        data = json.loads(raw)
    except (binascii.Error, UnicodeDecodeError, ValueError) as e:
        raise TokenError("Malformed token") from e
    if not isinstance(data, dict):
        raise TokenError("Malformed token")
    return data


def _sign(signing_input: str, secret: str) -> str:
    digest = hmac.new(secret.encode(), signing_input.encode(), hashlib.sha256).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode()


def issue_token(subject: str, ttl_minutes: Optional[int] = None, secret: Optional[str] = None) -> str:
    """HS256 token carrying `sub` and an integer `exp` (seconds since epoch)."""
    minutes = config.ACCESS_TOKEN_EXPIRE_MINUTES if ttl_minutes is None else ttl_minutes
    claims = {"sub": subject, "exp": int(time.time()) + minutes * 60}
    signing_input = f"{_encode_part(_HEADER)}.{_encode_part(claims)}"
    return f"{signing_input}.{_sign(signing_input, secret or config.JWT_SECRET)}"


def read_token(token: str, secret: Optional[str] = None) -> str:
    """Returns the token's subject or raises TokenError."""
    parts = token.split(".")
    if len(parts) != 3:
        raise TokenError("Malformed token")
    header, claims, signature = parts
    if not hmac.compare_digest(_sign(f"{header}.{claims}", secret or config.JWT_SECRET), signature):
        raise TokenError("Invalid signature")
    if _decode_part(header).get("alg") != "HS256":
        raise TokenError("Unsupported algorithm")
    payload = _decode_part(claims)
    exp = payload.get("exp")
    if not isinstance(exp, int) or exp <= time.time():
        raise TokenError("Token expired")
    subject = payload.get("sub")
    if not subject:
        raise TokenError("Token has no subject")
    return subject


def hash_password(password: str) -> str:
    return hashlib.pbkdf2_hmac("sha256", password.encode(), config.PWD_SALT.encode(), 100_000).hex()


def verify_password(password: str, hashed: str) -> bool:
    return hmac.compare_digest(hash_password(password), hashed)
