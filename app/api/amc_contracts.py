from fastapi import APIRouter, BackgroundTasks, Depends, Query, Request
from sqlalchemy.orm import Session, selectinload
from sqlalchemy import or_
from typing import Optional
import logging

from app.config import settings
from app.database import get_db
from app.models import AMCContract, CONTRACT_STATUSES, REQUEST_STATUSES, REQUEST_TYPES, UNIT_TYPES, ServiceRequest, User
from app.schemas import ContractDetailsUpdate, ContractServiceRequestUpdate, ContractStatusUpdate, ContractSubmit
from app.serializers import contract_to_dict, service_request_detail, service_request_notification
from app.services.amc_contracts import cascade_cancellation, default_end_date, submit_contract
from app.services.email import get_email_service
from app.services.tasks import dispatch_detached
from app.api.auth import get_current_user, get_optional_user, require_admin
from app.utils.rate_limiter import RateLimits, limiter
from app.utils.responses import APIError, created_response, paginate, success_response
from app.utils.validators import is_valid_email, like_pattern, parse_datetime, parse_id, parse_positive_int

logger = logging.getLogger(__name__)

router = APIRouter()


def _contract_query(db: Session, detail: bool = False):
    if detail:
        return db.query(AMCContract).options(
            selectinload(AMCContract.service_requests).selectinload(ServiceRequest.service),
            selectinload(AMCContract.service_requests).selectinload(ServiceRequest.vendor),
        )
    return db.query(AMCContract).options(selectinload(AMCContract.service_requests))


def _get_contract_or_404(db: Session, contract_id: str, detail: bool = False) -> AMCContract:
    cid = parse_id(contract_id, "INVALID_ID", "Invalid contract ID")
    contract = _contract_query(db, detail).filter(AMCContract.id == cid).first()
    if not contract:
        raise APIError(404, "AMC contract not found", "NOT_FOUND")
    return contract


def _notify_admin(contract_number: str, first_request: dict, total: int):
    admin_email = settings.admin_email
    if not is_valid_email(admin_email):
        logger.warning(f"ADMIN_EMAIL '{admin_email}' is invalid; skipping AMC notification")
        return
    data = dict(first_request)
    data["service_name"] = f"AMC Contract: {contract_number} ({total} services)"
    get_email_service().send_admin_notification_email(admin_email, data)


# ============================================================================
# Public / customer endpoints
# ============================================================================

@router.post("")
@limiter.limit(RateLimits.CONTRACT_SUBMIT)
async def submit_amc_contract(
    request: Request,
    payload: ContractSubmit,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: Optional[User] = Depends(get_optional_user)
):
    """Submit an AMC contract with a cart of services"""
    contract, created = submit_contract(db, payload, current_user)

    if created:
        dispatch_detached(
            background_tasks,
            "amc-admin-notification",
            _notify_admin,
            contract.contract_number,
            service_request_notification(created[0]),
            len(created),
        )

    contract = _contract_query(db).filter(AMCContract.id == contract.id).first()
    return created_response("AMC contract submitted successfully", {"amcContract": contract_to_dict(contract)})


@router.get("/my")
async def get_my_amc_contracts(
    page: Optional[str] = Query(None),
    limit: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Contracts linked to the caller's account, email or phone"""
    page_num = parse_positive_int(page, 1)
    page_size = parse_positive_int(limit, 10)

    match_conditions = [AMCContract.user_id == current_user.id]
    if current_user.email:
        match_conditions.append(AMCContract.contact_email == current_user.email.lower())
    phone = db.query(User.phone_number).filter(User.id == current_user.id).scalar()
    if phone:
        match_conditions.append(AMCContract.contact_phone == phone)

    query = _contract_query(db).filter(or_(*match_conditions)).order_by(
        AMCContract.created_at.desc(), AMCContract.id.desc()
    )
    contracts, pagination = paginate(query, page_num, page_size)

    return success_response("User AMC contracts retrieved successfully", {
        "contracts": [contract_to_dict(c) for c in contracts],
        "pagination": pagination,
    })


@router.get("/{contract_id}")
async def get_amc_contract(contract_id: str, db: Session = Depends(get_db)):
    """Get a single AMC contract with its service requests, services and vendors"""
    contract = _get_contract_or_404(db, contract_id, detail=True)
    return success_response("AMC contract retrieved successfully", {"contract": contract_to_dict(contract, detail=True)})


# ============================================================================
# Admin endpoints
# ============================================================================

@router.get("")
async def get_all_amc_contracts(
    page: Optional[str] = Query(None),
    limit: Optional[str] = Query(None),
    status_filter: Optional[str] = Query(None, alias="status"),
    search: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin)
):
    """List all AMC contracts (admin)"""
    page_num = parse_positive_int(page, 1)
    page_size = parse_positive_int(limit, 20)

    query = _contract_query(db)
    if status_filter:
        query = query.filter(AMCContract.status == status_filter)
    if search:
        search_term = like_pattern(search)
        query = query.filter(
            or_(
                AMCContract.company_name.ilike(search_term, escape="\\"),
                AMCContract.contract_number.ilike(search_term, escape="\\"),
                AMCContract.contact_person.ilike(search_term, escape="\\"),
                AMCContract.contact_email.ilike(search_term, escape="\\"),
            )
        )

    query = query.order_by(AMCContract.created_at.desc(), AMCContract.id.desc())
    contracts, pagination = paginate(query, page_num, page_size)

    return success_response("AMC contracts retrieved successfully", {
        "contracts": [contract_to_dict(c) for c in contracts],
        "pagination": pagination,
    })


@router.put("/{contract_id}/status")
async def update_amc_contract_status(
    contract_id: str,
    payload: ContractStatusUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin)
):
    """Update contract status; cancelling also cancels open service requests"""
    cid = parse_id(contract_id, "INVALID_ID", "Invalid contract ID")

    if payload.status not in CONTRACT_STATUSES:
        raise APIError(400, f"Invalid status. Must be one of: {', '.join(CONTRACT_STATUSES)}", "INVALID_STATUS")

    contract = db.query(AMCContract).filter(AMCContract.id == cid).first()
    if not contract:
        raise APIError(404, "AMC contract not found", "NOT_FOUND")

    contract.status = payload.status
    db.commit()

    if payload.status == "Cancelled":
        cancelled = cascade_cancellation(db, contract)
        logger.info(f"Contract {contract.contract_number} cancelled; {cancelled} service requests cancelled")

    contract = _contract_query(db).filter(AMCContract.id == cid).first()
    logger.info(f"Contract status updated: {contract.id} - {contract.status}")
    return success_response("AMC contract status updated successfully", {"contract": contract_to_dict(contract)})


@router.put("/{contract_id}")
async def update_amc_contract_details(
    contract_id: str,
    payload: ContractDetailsUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin)
):
    """Partial update of dates, admin notes and contract value"""
    contract = _get_contract_or_404(db, contract_id)

    update_data = payload.model_dump(exclude_unset=True)
    if "start_date" in update_data:
        contract.start_date = _optional_date(update_data["start_date"], "startDate")
    if "end_date" in update_data:
        contract.end_date = _optional_date(update_data["end_date"], "endDate")
    if "admin_notes" in update_data:
        contract.admin_notes = update_data["admin_notes"]
    if "total_contract_value" in update_data:
        contract.total_contract_value = update_data["total_contract_value"]

    contract.end_date = default_end_date(contract.start_date, contract.end_date)
    db.commit()

    contract = _get_contract_or_404(db, contract_id)
    logger.info(f"Contract details updated: {contract.id} - {contract.contract_number}")
    return success_response("AMC contract details updated successfully", {"contract": contract_to_dict(contract)})


@router.put("/{contract_id}/service-requests/{request_id}")
async def update_contract_service_request(
    contract_id: str,
    request_id: str,
    payload: ContractServiceRequestUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin)
):
    """Schedule or price one service request of a contract"""
    cid = parse_id(contract_id, "INVALID_ID", "Invalid contract ID")
    sr_id = parse_id(request_id, "INVALID_ID", "Invalid service request ID")

    sr = db.query(ServiceRequest).filter(
        ServiceRequest.id == sr_id,
        ServiceRequest.amc_contract_id == cid
    ).first()
    if not sr:
        raise APIError(404, "Service request not found in this contract", "SERVICE_REQUEST_NOT_FOUND")

    update_data = payload.model_dump(exclude_unset=True)
    if update_data.get("request_type") is not None and update_data["request_type"] not in REQUEST_TYPES:
        raise APIError(400, f"Invalid request type. Must be one of: {', '.join(REQUEST_TYPES)}", "INVALID_REQUEST_TYPE")
    if update_data.get("status") is not None and update_data["status"] not in REQUEST_STATUSES:
        raise APIError(400, f"Invalid status. Must be one of: {', '.join(REQUEST_STATUSES)}", "INVALID_STATUS")
    if update_data.get("unit_type") is not None and update_data["unit_type"] not in UNIT_TYPES:
        raise APIError(400, f"Invalid unit type. Must be one of: {', '.join(UNIT_TYPES)}", "INVALID_UNIT_TYPE")

    if "requested_date" in update_data:
        requested = _optional_date(update_data.pop("requested_date"), "requested_date")
        if requested is None:
            raise APIError(400, "requested_date cannot be empty", "INVALID_DATE")
        sr.requested_date = requested

    for key, value in update_data.items():
        if value is not None or key == "admin_notes":
            setattr(sr, key, value)

    if sr.unit_price is not None:
        sr.total_price = round(sr.unit_price * (sr.number_of_units or 1), 2)

    if sr.request_type != "Quotation" and (sr.unit_price is None or sr.unit_type is None):
        db.rollback()
        raise APIError(400, "unit_type and unit_price are required unless the request is a Quotation", "PRICING_REQUIRED")

    db.commit()
    db.refresh(sr)
    logger.info(f"Service request {sr.id} of contract {cid} updated")
    return success_response("Service request updated successfully", {"serviceRequest": service_request_detail(sr)})


def _optional_date(value, field):
    if value is None or value == "":
        return None
    parsed = parse_datetime(value)
    if parsed is None:
        raise APIError(400, f"Invalid date for {field}", "INVALID_DATE")
    return parsed
