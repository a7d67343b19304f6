"""Verification emails sent through Resend."""
import logging
from typing import Dict

import resend

import config

logger = logging.getLogger(__name__)


class OtpMailer:
    """Delivers signup codes; `configured` is False without an API key and sender."""

    def __init__(self, api_key: str = "", sender: str = "", ttl_seconds: int = config.OTP_TTL_SECONDS):
        self.api_key = api_key
        self.sender = sender
        self.ttl_minutes = max(1, ttl_seconds // 60)

    @property
    def configured(self) -> bool:
        return bool(self.api_key and self.sender)

    def send(self, email: str, otp: str) -> bool:
        payload: Dict[str, object] = {
            "from": self.sender,
            "to": [email],
            "subject": "Your verification code",
            "text": f"Your verification code is {otp}. It expires in {self.ttl_minutes} minutes.",
        }
        previous_api_key = getattr(resend, "api_key", None)
        resend.api_key = self.api_key
        try:
            response = resend.Emails.send(payload)
        except Exception as exc:
            logger.error("Verification email to %s failed: %s", email, exc)
            return False
        finally:
            resend.api_key = previous_api_key
        if not isinstance(response, dict) or not response.get("id"):
            logger.error("Verification email to %s rejected: %s", email, response)
            return False
        logger.info("Verification email sent to %s", email)
        return True


def default_mailer() -> OtpMailer:
    return OtpMailer(config.RESEND_API_KEY, config.OTP_SENDER_EMAIL, config.OTP_TTL_SECONDS)
