"""
One-time codes for password reset.

Only the newest unconsumed code for an (email, purpose) pair is live; issuing
a new one consumes the rest. A code allows a fixed number of guesses.
"""
import logging
import secrets
import string
from datetime import datetime, timedelta

from sqlalchemy.orm import Session

from app.config import settings
from app.models import OTPCode

logger = logging.getLogger(__name__)

CODE_LENGTH = 6
MAX_ATTEMPTS = 3


class OTPError(Exception):
    def __init__(self, code: str, message: str):
        super().__init__(message)
        self.code = code
        self.message = message


def _live_codes(db: Session, email: str, purpose: str):
    return db.query(OTPCode).filter(
        OTPCode.email == email,
        OTPCode.purpose == purpose,
        OTPCode.is_verified == False,
    )


def issue_code(db: Session, email: str, purpose: str = "password_reset") -> OTPCode:
    now = datetime.utcnow()
    _live_codes(db, email, purpose).update({"is_verified": True, "used_at": now})

    record = OTPCode(
        email=email,
        otp_code="".join(secrets.choice(string.digits) for _ in range(CODE_LENGTH)),
        purpose=purpose,
        expires_at=now + timedelta(minutes=settings.otp_expiry_minutes),
        max_attempts=MAX_ATTEMPTS,
    )
    db.add(record)
    db.commit()
    db.refresh(record)
    return record


def consume_code(db: Session, email: str, code: str, purpose: str = "password_reset") -> OTPCode:
    """Check a guess against the live code; raises OTPError when it cannot be accepted"""
    record = _live_codes(db, email, purpose).order_by(OTPCode.created_at.desc(), OTPCode.id.desc()).first()
    if record is None:
        raise OTPError("OTP_NOT_FOUND", "No active OTP found for this email")
    if datetime.utcnow() > record.expires_at:
        raise OTPError("OTP_EXPIRED", "OTP has expired")
    if record.attempts >= record.max_attempts:
        raise OTPError("MAX_ATTEMPTS_REACHED", "Maximum verification attempts exceeded")

    record.attempts += 1
    if not secrets.compare_digest(record.otp_code, code or ""):
        db.commit()
        remaining = record.max_attempts - record.attempts
        logger.info(f"Wrong OTP for {email} ({remaining} attempts left)")
        raise OTPError("INVALID_OTP", f"Invalid OTP code. {remaining} attempts remaining")

    record.is_verified = True
    record.used_at = datetime.utcnow()
    db.commit()
    return record
