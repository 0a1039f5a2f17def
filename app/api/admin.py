from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
import logging

from app.database import get_db
from app.models import User, Vendor
from app.schemas import VendorAvailabilityUpdate
from app.serializers import vendor_availability
from app.services.vendor_availability import validate_schedule, validate_unavailable_dates
from app.api.auth import require_admin
from app.utils.responses import APIError, success_response
from app.utils.validators import parse_id

logger = logging.getLogger(__name__)

router = APIRouter()


def apply_availability_update(db: Session, vendor_id: str, payload: VendorAvailabilityUpdate) -> Vendor:
    """Validate and overwrite whichever availability lists were supplied"""
    vid = parse_id(vendor_id, "INVALID_VENDOR_ID", "Invalid vendor ID format")

    vendor = db.query(Vendor).filter(Vendor.id == vid).first()
    if not vendor:
        raise APIError(404, "Vendor not found", "NOT_FOUND")

    update_data = payload.model_dump(exclude_unset=True)

    schedule = update_data.get("availability_schedule")
    dates = update_data.get("unavailable_dates")
    if schedule is not None:
        schedule = validate_schedule(schedule)
    if dates is not None:
        dates = validate_unavailable_dates(dates)

    if "availability_schedule" in update_data:
        vendor.availability_schedule = schedule or []
    if "unavailable_dates" in update_data:
        vendor.unavailable_dates = dates or []

    db.commit()
    db.refresh(vendor)
    logger.info(f"Availability updated for vendor {vendor.id}")
    return vendor


@router.put("/admin/vendor/{vendor_id}/availability")
async def update_vendor_availability(
    vendor_id: str,
    payload: VendorAvailabilityUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin)
):
    """Update a vendor's weekly schedule and/or blocked dates (admin)"""
    vendor = apply_availability_update(db, vendor_id, payload)
    return success_response("Vendor availability updated successfully", {"vendor": vendor_availability(vendor)})
