"""
Signup with one-time passwords, and login.

Unverified signups are kept per email in the `pending_registration`
collection with an expiry, so several can be in flight at once and they
survive restarts.
"""
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional, Union

import config
from database import now
from interactors import Rejection, public_user
from repositories import PendingRegistrationRepository, UserRepository
from schemas import PendingRegistration, User
from security import hash_password, issue_token, verify_password

logger = logging.getLogger(__name__)


def generate_otp() -> str:
    return f"{secrets.randbelow(1_000_000):06d}"


def _aware(value: datetime) -> datetime:
    # pymongo hands back naive UTC datetimes unless tz_aware is set
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


class AccountInteractor:
    def __init__(self, users: UserRepository, pending: PendingRegistrationRepository,
                 ttl_seconds: int = config.OTP_TTL_SECONDS, expose_otp: bool = config.EXPOSE_OTP,
                 clock: Callable[[], datetime] = now, otp_factory: Callable[[], str] = generate_otp,
                 send_otp: Optional[Callable[[str, str], bool]] = None):
        self.users = users
        self.pending = pending
        self.ttl = timedelta(seconds=ttl_seconds)
        self.expose_otp = expose_otp
        self.clock = clock
        self.otp_factory = otp_factory
        self.send_otp = send_otp

    def register(self, email: str, password: str, name: Optional[str] = None) -> Union[Dict[str, Any], Rejection]:
        email = email.lower()
        if self.users.find_by_email(email):
            return Rejection("User already registered", 409)
        otp = self.otp_factory()
        record = PendingRegistration(
            email=email,
            password_hash=hash_password(password),
            otp=otp,
            expires_at=self.clock() + self.ttl,
        ).model_dump()
        record["name"] = name or email.split("@")[0]
        self.pending.put(email, record)
        if self.send_otp is not None and not self.send_otp(email, otp):
            self.pending.delete(email)
            return Rejection("Could not send verification email", 502)
        logger.info("Registration started for %s", email)
        resp: Dict[str, Any] = {
            "message": "User registration initiated..",
            "email": email,
            "expires_in": int(self.ttl.total_seconds()),
        }
        # without a mailer the code goes back to the caller
        if self.expose_otp or self.send_otp is None:
            resp["otp"] = otp
        return resp

    def verify_otp(self, email: str, otp: str) -> Union[Dict[str, Any], Rejection]:
        email = email.lower()
        record = self.pending.get(email)
        if record is None or not secrets.compare_digest(str(record.get("otp", "")), otp):
            return Rejection("Invalid OTP.", 400)
        if _aware(record["expires_at"]) <= self.clock():
            self.pending.delete(email)
            return Rejection("OTP expired, please register again.", 400)
        if self.users.find_by_email(email):
            self.pending.delete(email)
            return Rejection("User already registered", 409)
        user = User(name=record.get("name") or email.split("@")[0], email=email,
                    password_hash=record["password_hash"]).model_dump()
        user = self.users.add(user)
        self.pending.delete(email)
        logger.info("User %s registered", user["_id"])
        return {"message": "User registered successfully.", "user": public_user(user)}

    def login(self, email: str, password: str, admin: bool = False) -> Union[Dict[str, Any], Rejection]:
        user = self.users.find_by_email(email)
        if not user or not verify_password(password, user.get("password_hash", "")):
            return Rejection("Incorrect email or password", 401)
        if admin and not user.get("is_admin"):
            return Rejection("Admin only", 403)
        if user.get("is_blocked"):
            logger.info("Blocked user %s refused login", user["_id"])
            return Rejection("User is blocked", 403)
        token = issue_token(str(user["_id"]))
        return {"access_token": token, "token_type": "bearer", "user": public_user(user)}
