from fastapi import APIRouter, Request
from datetime import datetime
import logging

from app.schemas import ContactForm
from app.services.email import EmailError, get_email_service
from app.utils.rate_limiter import RateLimits, limiter
from app.utils.responses import APIError, success_response
from app.utils.validators import is_blank, is_valid_email, is_valid_phone

logger = logging.getLogger(__name__)

router = APIRouter()

FIELD_LIMITS = [
    ("first_name", 2, 50, "First name", "INVALID_FIRST_NAME"),
    ("last_name", 2, 50, "Last name", "INVALID_LAST_NAME"),
    ("subject", 5, 100, "Subject", "INVALID_SUBJECT"),
    ("message", 10, 2000, "Message", "INVALID_MESSAGE"),
]


@router.post("")
@limiter.limit(RateLimits.CONTACT)
async def submit_contact_form(request: Request, payload: ContactForm):
    """Forward a contact-us submission to the admin mailbox"""
    fields = payload.model_dump()
    if any(is_blank(value) for value in fields.values()):
        raise APIError(
            400,
            "All fields are required (firstName, lastName, email, phone, subject, message)",
            "MISSING_REQUIRED_FIELDS",
        )

    if not is_valid_email(payload.email.strip()):
        raise APIError(400, "Please provide a valid email address", "INVALID_EMAIL")
    if not is_valid_phone(payload.phone):
        raise APIError(400, "Please provide a valid phone number (7-16 digits)", "INVALID_PHONE")

    for field, min_len, max_len, label, code in FIELD_LIMITS:
        length = len(fields[field])
        if length < min_len or length > max_len:
            raise APIError(400, f"{label} must be between {min_len} and {max_len} characters", code)

    contact = {
        "first_name": payload.first_name.strip(),
        "last_name": payload.last_name.strip(),
        "email": payload.email.strip().lower(),
        "phone": payload.phone.strip(),
        "subject": payload.subject.strip(),
        "message": payload.message.strip(),
    }

    try:
        result = get_email_service().send_contact_email(contact)
    except EmailError as e:
        logger.error(f"Failed to send contact form from {contact['email']}: {e}")
        raise APIError(500, "Failed to send your message. Please try again later.", "EMAIL_SEND_FAILED")

    logger.info(f"Contact form submitted by {contact['email']}")
    return success_response("Your message has been sent successfully. We will get back to you soon!", {
        "messageId": result["messageId"],
        "timestamp": datetime.utcnow().isoformat(),
    })
