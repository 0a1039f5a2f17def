from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from datetime import datetime
import logging

from app.database import get_db
from app.models import User, Vendor
from app.schemas import (
    BlockDatesRequest, VendorAvailabilityUpdate, VendorBankingUpdate, VendorKYCUpdate,
    VendorProfileUpdate, VerificationDecision, WeeklyScheduleUpdate,
)
from app.serializers import vendor_availability, vendor_banking, vendor_kyc, vendor_profile
from app.services.vendor_availability import merge_blocked_dates, validate_schedule, validate_unavailable_dates
from app.api.admin import apply_availability_update
from app.api.auth import require_admin, require_vendor
from app.utils.responses import APIError, success_response
from app.utils.validators import is_blank, parse_id

logger = logging.getLogger(__name__)

router = APIRouter()


def _get_my_vendor(db: Session, user: User) -> Vendor:
    vendor = db.query(Vendor).filter(Vendor.user_id == user.id).first()
    if not vendor:
        raise APIError(404, "Vendor profile not found", "VENDOR_NOT_FOUND")
    return vendor


def _get_vendor(db: Session, vendor_id: str) -> Vendor:
    vid = parse_id(vendor_id, "INVALID_VENDOR_ID", "Invalid vendor ID format")
    vendor = db.query(Vendor).filter(Vendor.id == vid).first()
    if not vendor:
        raise APIError(404, "Vendor not found", "NOT_FOUND")
    return vendor


# ============================================================================
# Vendor self-service
# ============================================================================

@router.get("/me/profile")
async def get_my_profile(db: Session = Depends(get_db), current_user: User = Depends(require_vendor)):
    vendor = _get_my_vendor(db, current_user)
    return success_response("Vendor profile retrieved successfully", {"vendor": vendor_profile(vendor)})


@router.patch("/me/profile")
async def update_my_profile(
    payload: VendorProfileUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_vendor)
):
    vendor = _get_my_vendor(db, current_user)
    update_data = payload.model_dump(exclude_unset=True)

    for field in ("first_name", "last_name"):
        if field in update_data and is_blank(update_data[field]):
            raise APIError(400, f"{field} cannot be empty", "VALIDATION_ERROR")
    if "experience" in update_data and update_data["experience"] is not None and update_data["experience"] < 0:
        raise APIError(400, "experience cannot be negative", "VALIDATION_ERROR")

    for key, value in update_data.items():
        setattr(vendor, key, value.strip() if isinstance(value, str) else value)

    db.commit()
    db.refresh(vendor)
    logger.info(f"Vendor {vendor.id} updated profile")
    return success_response("Vendor profile updated successfully", {"vendor": vendor_profile(vendor)})


@router.get("/me/kyc")
async def get_my_kyc(db: Session = Depends(get_db), current_user: User = Depends(require_vendor)):
    vendor = _get_my_vendor(db, current_user)
    return success_response("KYC details retrieved successfully", {"kyc": vendor_kyc(vendor)})


@router.patch("/me/kyc")
async def update_my_kyc(
    payload: VendorKYCUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_vendor)
):
    """Submitting KYC details puts them back into review"""
    vendor = _get_my_vendor(db, current_user)
    update_data = payload.model_dump(exclude_unset=True)

    id_type = update_data.get("id_type", vendor.id_type)
    id_number = update_data.get("id_number", vendor.id_number)
    if is_blank(id_type) or is_blank(id_number):
        raise APIError(400, "idType and idNumber are required", "MISSING_REQUIRED_FIELDS")

    vendor.id_type = id_type.strip()
    vendor.id_number = id_number.strip()
    if "document_url" in update_data:
        vendor.kyc_document_url = update_data["document_url"]
    vendor.kyc_status = "pending"
    vendor.kyc_submitted_at = datetime.utcnow()
    vendor.kyc_verified_at = None
    vendor.kyc_rejection_reason = None

    db.commit()
    db.refresh(vendor)
    logger.info(f"Vendor {vendor.id} submitted KYC")
    return success_response("KYC details submitted for verification", {"kyc": vendor_kyc(vendor)})


@router.get("/me/banking")
async def get_my_banking(db: Session = Depends(get_db), current_user: User = Depends(require_vendor)):
    vendor = _get_my_vendor(db, current_user)
    return success_response("Banking details retrieved successfully", {"banking": vendor_banking(vendor)})


@router.patch("/me/banking")
async def update_my_banking(
    payload: VendorBankingUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_vendor)
):
    vendor = _get_my_vendor(db, current_user)
    update_data = payload.model_dump(exclude_unset=True)

    for key, value in update_data.items():
        setattr(vendor, key, value.strip() if isinstance(value, str) else value)

    if is_blank(vendor.bank_name) or (is_blank(vendor.bank_account_number) and is_blank(vendor.iban)):
        db.rollback()
        raise APIError(400, "bankName and either bankAccountNumber or iban are required", "MISSING_REQUIRED_FIELDS")

    vendor.banking_status = "pending"
    vendor.banking_verified_at = None

    db.commit()
    db.refresh(vendor)
    logger.info(f"Vendor {vendor.id} updated banking details")
    return success_response("Banking details submitted for verification", {"banking": vendor_banking(vendor)})


@router.get("/me/availability")
async def get_my_availability(db: Session = Depends(get_db), current_user: User = Depends(require_vendor)):
    vendor = _get_my_vendor(db, current_user)
    return success_response("Availability retrieved successfully", {"vendor": vendor_availability(vendor)})


@router.patch("/me/availability/weekly")
async def update_my_weekly_schedule(
    payload: WeeklyScheduleUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_vendor)
):
    vendor = _get_my_vendor(db, current_user)
    vendor.availability_schedule = validate_schedule(payload.availability_schedule)
    db.commit()
    db.refresh(vendor)
    return success_response("Weekly schedule updated successfully", {"vendor": vendor_availability(vendor)})


@router.post("/me/availability/block-dates")
async def block_my_dates(
    payload: BlockDatesRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_vendor)
):
    """Add blocked dates; dates may be plain strings or {date, reason} objects"""
    vendor = _get_my_vendor(db, current_user)

    if not isinstance(payload.dates, list) or not payload.dates:
        raise APIError(400, "dates must be a non-empty array", "INVALID_UNAVAILABLE_DATES")

    entries = []
    for item in payload.dates:
        if isinstance(item, str):
            item = {"date": item}
        if isinstance(item, dict) and payload.reason and not item.get("reason"):
            item = dict(item, reason=payload.reason)
        entries.append(item)

    new_dates = validate_unavailable_dates(entries)
    today = datetime.utcnow().date().isoformat()
    if any(item["date"] < today for item in new_dates):
        raise APIError(400, "Cannot block dates in the past", "INVALID_DATE_FORMAT")

    vendor.unavailable_dates = merge_blocked_dates(vendor.unavailable_dates, new_dates)
    db.commit()
    db.refresh(vendor)
    logger.info(f"Vendor {vendor.id} blocked {len(new_dates)} dates")
    return success_response("Dates blocked successfully", {"vendor": vendor_availability(vendor)})


# ============================================================================
# Admin
# ============================================================================

@router.put("/{vendor_id}/availability")
async def update_vendor_availability_legacy(
    vendor_id: str,
    payload: VendorAvailabilityUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin)
):
    """Older path for the admin availability update"""
    vendor = apply_availability_update(db, vendor_id, payload)
    return success_response("Vendor availability updated successfully", {"vendor": vendor_availability(vendor)})


@router.patch("/{vendor_id}/kyc-verify")
async def verify_vendor_kyc(
    vendor_id: str,
    payload: VerificationDecision,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin)
):
    vendor = _get_vendor(db, vendor_id)
    if vendor.kyc_status == "not_submitted":
        raise APIError(400, "Vendor has not submitted KYC details", "KYC_NOT_SUBMITTED")
    if not payload.approved and is_blank(payload.reason):
        raise APIError(400, "A reason is required when rejecting KYC", "MISSING_REASON")

    if payload.approved:
        vendor.kyc_status = "verified"
        vendor.kyc_verified_at = datetime.utcnow()
        vendor.kyc_rejection_reason = None
    else:
        vendor.kyc_status = "rejected"
        vendor.kyc_verified_at = None
        vendor.kyc_rejection_reason = payload.reason.strip()

    db.commit()
    db.refresh(vendor)
    logger.info(f"KYC for vendor {vendor.id} marked {vendor.kyc_status} by admin {current_user.id}")
    return success_response(f"KYC {vendor.kyc_status}", {"kyc": vendor_kyc(vendor)})


@router.patch("/{vendor_id}/banking-verify")
async def verify_vendor_banking(
    vendor_id: str,
    payload: VerificationDecision,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin)
):
    vendor = _get_vendor(db, vendor_id)
    if vendor.banking_status == "not_submitted":
        raise APIError(400, "Vendor has not submitted banking details", "BANKING_NOT_SUBMITTED")

    vendor.banking_status = "verified" if payload.approved else "rejected"
    vendor.banking_verified_at = datetime.utcnow() if payload.approved else None

    db.commit()
    db.refresh(vendor)
    logger.info(f"Banking for vendor {vendor.id} marked {vendor.banking_status} by admin {current_user.id}")
    return success_response(f"Banking details {vendor.banking_status}", {"banking": vendor_banking(vendor)})
