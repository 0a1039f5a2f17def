from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
import logging

from app.database import get_db
from app.models import User
from app.schemas import MarketingEmailRequest, TestEmailRequest
from app.services.email import EmailError, get_email_service
from app.api.auth import require_admin
from app.utils.responses import APIError, success_response
from app.utils.validators import is_blank, is_valid_email

logger = logging.getLogger(__name__)

router = APIRouter()


def _resolve_recipients(db: Session, recipients) -> list:
    """A list of addresses, a single address, or "all" for every active user"""
    if recipients == "all" or recipients == ["all"]:
        emails = db.query(User.email).filter(User.is_active == True, User.email != "").all()
        return [email for (email,) in emails if is_valid_email(email)]
    return recipients if isinstance(recipients, list) else [recipients]


@router.post("/marketing")
async def send_marketing_email(
    payload: MarketingEmailRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin)
):
    """Broadcast an email; each recipient is sent to individually"""
    if not payload.recipients or is_blank(payload.subject) or is_blank(payload.message):
        raise APIError(400, "Recipients, subject, and message are required", "MISSING_REQUIRED_FIELDS")
    if not isinstance(payload.recipients, (list, str)):
        raise APIError(
            400,
            "Recipients must be an array of email addresses or a single email string",
            "INVALID_RECIPIENTS",
        )

    recipient_list = _resolve_recipients(db, payload.recipients)
    if not recipient_list:
        raise APIError(400, "No valid email addresses found", "NO_VALID_RECIPIENTS")

    try:
        result = get_email_service().send_marketing_email(
            recipient_list, payload.subject, payload.message, payload.title
        )
    except EmailError as e:
        raise APIError(400, str(e), "NO_VALID_RECIPIENTS")

    tally = {
        "totalRecipients": len(recipient_list),
        "totalSent": result["totalSent"],
        "totalFailed": result["totalFailed"],
        "results": result["results"],
    }
    logger.info(
        f"Marketing email '{payload.subject}' by admin {current_user.id}: "
        f"{result['totalSent']} sent, {result['totalFailed']} failed"
    )

    if result["totalSent"] == 0:
        raise APIError(500, "Failed to send marketing emails", "EMAIL_SEND_FAILED", tally)
    if result["totalFailed"]:
        return success_response("Marketing email sent with some failures", tally)
    return success_response("Marketing email sent successfully", tally)


@router.post("/test")
async def test_email(payload: TestEmailRequest, current_user: User = Depends(require_admin)):
    """Probe SMTP connectivity and optionally send a test message"""
    recipient = payload.test_email
    if recipient and not is_valid_email(recipient):
        raise APIError(400, "Invalid email address format", "INVALID_EMAIL")

    email_service = get_email_service()
    connection = email_service.test_connection()
    if not connection["success"]:
        raise APIError(500, "Email service configuration error", "EMAIL_CONFIG_ERROR", {
            "connectionTest": connection["message"],
            "troubleshooting": connection.get("troubleshooting", []),
            "errorCode": connection.get("errorCode"),
        })

    connection_test = {"success": True, "message": connection["message"]}
    if not recipient:
        return success_response("Email service connection test successful", {
            "connectionTest": connection_test,
            "note": 'No test email sent. Provide "testEmail" in request body to send a test email.',
        })

    try:
        result = email_service.send_test_email(recipient)
    except EmailError as e:
        raise APIError(500, "Email connection is OK but failed to send test email", "EMAIL_SEND_FAILED", {
            "connectionTest": connection_test,
            "testEmail": {"success": False, "error": str(e)},
        })

    return success_response("Email service test successful", {
        "connectionTest": connection_test,
        "testEmail": {
            "success": True,
            "messageId": result["messageId"],
            "recipient": recipient,
            "message": "Test email sent successfully",
        },
    })
