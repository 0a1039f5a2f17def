from fastapi import APIRouter, BackgroundTasks, Depends
from sqlalchemy.orm import Session
from datetime import datetime, timedelta
import logging

from app.config import settings
from app.database import get_db
from app.models import ServiceRequest, TERMINAL_REQUEST_STATUSES, User, Vendor
from app.schemas import AssignVendorRequest, PaymentLinkRequest, PaymentResult
from app.serializers import service_request_detail, service_request_notification, vendor_ref
from app.services.email import get_email_service
from app.services.tasks import dispatch_detached
from app.api.auth import require_admin
from app.utils.responses import APIError, success_response
from app.utils.security import create_link_token
from app.utils.validators import parse_id

logger = logging.getLogger(__name__)

router = APIRouter()


def _get_service_request(db: Session, request_id: str) -> ServiceRequest:
    sr_id = parse_id(request_id, "INVALID_ID", "Invalid service request ID")
    sr = db.query(ServiceRequest).filter(ServiceRequest.id == sr_id).first()
    if not sr:
        raise APIError(404, "Service request not found", "SERVICE_REQUEST_NOT_FOUND")
    return sr


def _get_linked_request(db: Session, token: str) -> ServiceRequest:
    """Resolve a payment link token, rejecting links that can no longer be paid"""
    sr = db.query(ServiceRequest).filter(ServiceRequest.payment_link_token == token).first()
    if not sr:
        raise APIError(404, "Invalid payment link", "INVALID_PAYMENT_LINK")

    if sr.payment_link_is_used or sr.payment_status == "Success":
        raise APIError(410, "This payment link has already been used", "PAYMENT_LINK_USED")

    if sr.payment_link_is_expired or (sr.payment_link_expires_at and datetime.utcnow() > sr.payment_link_expires_at):
        if not sr.payment_link_is_expired:
            sr.payment_link_is_expired = True
            db.commit()
        raise APIError(410, "Payment link has expired", "PAYMENT_LINK_EXPIRED")
    return sr


@router.put("/{request_id}/assign")
async def assign_vendor(
    request_id: str,
    payload: AssignVendorRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin)
):
    """Assign an approved vendor and notify the customer"""
    sr = _get_service_request(db, request_id)
    if sr.status in TERMINAL_REQUEST_STATUSES:
        raise APIError(400, f"Cannot assign a vendor to a {sr.status} request", "INVALID_STATUS")

    vendor = db.query(Vendor).filter(Vendor.id == payload.vendor_id).first()
    if not vendor:
        raise APIError(404, "Vendor not found", "VENDOR_NOT_FOUND")
    if not vendor.approved or not vendor.is_active:
        raise APIError(400, "Vendor is not approved or inactive", "VENDOR_NOT_APPROVED")

    sr.vendor_id = vendor.id
    sr.status = "Assigned"
    db.commit()
    db.refresh(sr)

    dispatch_detached(
        background_tasks,
        "service-assigned-email",
        get_email_service().send_service_assigned_email,
        sr.user_email,
        sr.user_name,
        service_request_notification(sr),
        vendor_ref(vendor),
    )

    logger.info(f"Service request {sr.id} assigned to vendor {vendor.id}")
    return success_response("Vendor assigned successfully", {"serviceRequest": service_request_detail(sr)})


@router.post("/{request_id}/payment-link")
async def generate_payment_link(
    request_id: str,
    payload: PaymentLinkRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin)
):
    """Issue a single-use payment link for a service request and email it to the customer"""
    sr = _get_service_request(db, request_id)

    if sr.payment_status == "Success":
        raise APIError(400, "Payment already completed for this order", "PAYMENT_ALREADY_COMPLETED")

    amount = payload.amount if payload.amount is not None else sr.total_price
    if not amount or amount <= 0:
        raise APIError(400, "Invalid total price for payment", "INVALID_TOTAL_PRICE")

    expiry_hours = payload.expiry_hours or settings.payment_link_expiry_hours
    if expiry_hours <= 0:
        raise APIError(400, "expiryHours must be positive", "VALIDATION_ERROR")

    if sr.user_id is None:
        user = db.query(User).filter(
            (User.email == sr.user_email) | (User.phone_number == sr.user_phone)
        ).first()
        if user:
            sr.user_id = user.id

    token = create_link_token()
    now = datetime.utcnow()
    sr.total_price = amount
    sr.payment_method = "Online Payment"
    sr.payment_link_token = token
    sr.payment_link_url = f"{settings.frontend_url.rstrip('/')}/pay/{token}"
    sr.payment_link_generated_by = current_user.id
    sr.payment_link_generated_at = now
    sr.payment_link_expires_at = now + timedelta(hours=expiry_hours)
    sr.payment_link_is_expired = False
    sr.payment_link_is_used = False
    db.commit()
    db.refresh(sr)

    dispatch_detached(
        background_tasks,
        "payment-link-email",
        get_email_service().send_payment_link_email,
        sr.user_email,
        sr.user_name,
        service_request_notification(sr),
        sr.payment_link_url,
        amount,
        sr.payment_link_expires_at,
    )

    logger.info(f"Payment link generated for service request {sr.id} by admin {current_user.id}")
    return success_response("Payment link generated successfully", {
        "paymentLink": sr.payment_link_url,
        "token": token,
        "serviceRequestId": sr.id,
        "amount": amount,
        "currency": settings.currency,
        "customerName": sr.user_name,
        "customerEmail": sr.user_email,
        "expiresAt": sr.payment_link_expires_at,
        "expiryHours": expiry_hours,
    })


@router.get("/payment-link/{token}")
async def get_payment_link(token: str, db: Session = Depends(get_db)):
    sr = _get_linked_request(db, token)
    return success_response("Payment link is valid", {
        "serviceRequestId": sr.id,
        "serviceName": sr.service_name,
        "categoryName": sr.category_name,
        "amount": sr.total_price,
        "currency": settings.currency,
        "customerName": sr.user_name,
        "customerEmail": sr.user_email,
        "customerPhone": sr.user_phone,
        "requestType": sr.request_type,
        "requestedDate": sr.requested_date,
        "expiresAt": sr.payment_link_expires_at,
    })


@router.post("/payment-link/{token}/result")
async def record_payment_result(
    token: str,
    payload: PaymentResult,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db)
):
    """Gateway callback. A successful payment consumes the link; a failure leaves it open for retry."""
    if payload.status not in ("Success", "Failure"):
        raise APIError(400, "status must be Success or Failure", "INVALID_STATUS")

    sr = _get_linked_request(db, token)
    payment = {
        "transactionId": payload.transaction_id,
        "orderId": payload.order_id,
        "amount": payload.amount if payload.amount is not None else sr.total_price,
        "currency": settings.currency,
        "paymentDate": datetime.utcnow().isoformat(),
        "failureReason": payload.failure_reason,
        "bankReferenceNumber": payload.bank_reference_number,
    }

    sr.payment_status = payload.status
    sr.payment_details = payment
    if payload.status == "Success":
        sr.payment_link_is_used = True
    db.commit()
    db.refresh(sr)

    email_service = get_email_service()
    notification = service_request_notification(sr)
    if payload.status == "Success":
        dispatch_detached(background_tasks, "payment-success-email", email_service.send_payment_success_email,
                          sr.user_email, sr.user_name, notification, payment)
        dispatch_detached(background_tasks, "order-confirmation-email", email_service.send_order_confirmation_email,
                          sr.user_email, sr.user_name, notification)
    else:
        dispatch_detached(background_tasks, "payment-failure-email", email_service.send_payment_failure_email,
                          sr.user_email, sr.user_name, notification, payment, sr.payment_link_url)

    logger.info(f"Payment {payload.status} recorded for service request {sr.id}")
    return success_response(f"Payment {payload.status.lower()} recorded", {
        "serviceRequestId": sr.id,
        "paymentStatus": sr.payment_status,
        "paymentDetails": sr.payment_details,
    })
