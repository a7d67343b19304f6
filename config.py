import os

from dotenv import load_dotenv
load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME")

JWT_SECRET = os.getenv("JWT_SECRET", "devsecret")
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", 60 * 24))
PWD_SALT = os.getenv("PWD_SALT", "salt")

# Pending signups expire after five minutes
OTP_TTL_SECONDS = int(os.getenv("OTP_TTL_SECONDS", 300))
# The OTP is also returned in the register response when set, or when no mailer is configured
EXPOSE_OTP = os.getenv("EXPOSE_OTP", "false").lower() in ("1", "true", "yes")
RESEND_API_KEY = (os.getenv("RESEND_API_KEY") or "").strip()
OTP_SENDER_EMAIL = (os.getenv("OTP_SENDER_EMAIL") or "").strip()

CURRENCY = os.getenv("CURRENCY", "INR")
PAYMENT_PUBLIC_KEY = os.getenv("PAYMENT_PUBLIC_KEY", "")

CLOUDINARY_CLOUD_NAME = os.getenv("CLOUDINARY_CLOUD_NAME", "")
CLOUDINARY_UPLOAD_PRESET = os.getenv("CLOUDINARY_UPLOAD_PRESET", "")
UPLOAD_TIMEOUT = float(os.getenv("UPLOAD_TIMEOUT", 30))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

ADMIN_EMAIL = os.getenv("ADMIN_EMAIL", "")
ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD", "")

CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
PORT = int(os.getenv("PORT", 8000))
