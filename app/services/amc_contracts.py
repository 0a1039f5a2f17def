"""
AMC contract submission.

A submission turns a company's cart into one AMCContract plus one
ServiceRequest per cart line. Validation is fail-fast in a fixed order, and
the contract and its requests are written in a single transaction.
"""
import logging
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from dateutil.relativedelta import relativedelta
from pydantic import ValidationError
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from app.models import AMCContract, ContractSequence, Service, ServiceRequest, TERMINAL_REQUEST_STATUSES, User
from app.schemas import CartLine, CatalogCartLine, ContractSubmit, CustomCartLine, SubServiceSelection, parse_cart_line
from app.utils.responses import APIError
from app.utils.validators import as_db_id, is_blank, is_valid_email, parse_datetime

logger = logging.getLogger(__name__)

REQUIRED_CONTRACT_FIELDS = {
    "companyName": "company_name",
    "contactPerson": "contact_person",
    "contactPhone": "contact_phone",
    "contactEmail": "contact_email",
    "address": "address",
}
CUSTOM_SERVICE_CATEGORY = "Custom Service"


# ============================================================================
# Numbering and dates
# ============================================================================

def next_contract_number(db: Session, now: Optional[datetime] = None) -> str:
    """
    AMC-YYYYMMDD-NNNN, NNNN being the UTC day's sequence.

    The day's counter row is incremented with a single upsert, so concurrent
    submissions never read the same value. The increment belongs to the caller's
    transaction and is rolled back with it.
    """
    now = now or datetime.utcnow()
    day = now.strftime("%Y%m%d")
    dialect = db.get_bind().dialect.name

    if dialect in ("postgresql", "sqlite"):
        insert = postgresql.insert if dialect == "postgresql" else sqlite.insert
        stmt = insert(ContractSequence).values(day=day, last_number=1)
        stmt = stmt.on_conflict_do_update(
            index_elements=[ContractSequence.day],
            set_={"last_number": ContractSequence.last_number + 1},
        ).returning(ContractSequence.last_number)
        sequence = db.execute(stmt).scalar_one()
    else:
        counter = db.query(ContractSequence).filter(ContractSequence.day == day).with_for_update().first()
        if counter is None:
            counter = ContractSequence(day=day, last_number=0)
            db.add(counter)
        counter.last_number += 1
        db.flush()
        sequence = counter.last_number

    return f"AMC-{day}-{sequence:04d}"


def default_end_date(start_date: Optional[datetime], end_date: Optional[datetime]) -> Optional[datetime]:
    """End date defaults to one calendar year after the start date"""
    if end_date is not None:
        return end_date
    if start_date is None:
        return None
    return start_date + relativedelta(years=1)


def _parse_date_field(value: Optional[str], field: str) -> Optional[datetime]:
    if is_blank(value):
        return None
    parsed = parse_datetime(value)
    if parsed is None:
        raise APIError(400, f"Invalid date for {field}", "INVALID_DATE")
    return parsed


# ============================================================================
# Validation
# ============================================================================

def validate_submission(db: Session, payload: ContractSubmit) -> Tuple[List[CartLine], Dict[int, Service]]:
    """
    Fail-fast validation; the first violated rule decides the error code.
    Returns the typed cart lines and the active catalog services they reference.
    """
    missing = [name for name, attr in REQUIRED_CONTRACT_FIELDS.items() if is_blank(getattr(payload, attr))]
    if missing:
        raise APIError(400, f"Missing required fields: {', '.join(missing)}", "MISSING_REQUIRED_FIELDS")

    if not is_valid_email(payload.contact_email.strip()):
        raise APIError(400, "Invalid email format", "INVALID_EMAIL")

    if not isinstance(payload.services, list) or len(payload.services) == 0:
        raise APIError(400, "At least one service is required in the cart", "NO_SERVICES")

    lines: List[CartLine] = []
    for index, item in enumerate(payload.services):
        if not isinstance(item, dict):
            raise APIError(400, f"Cart item {index + 1} is malformed", "VALIDATION_ERROR")
        try:
            lines.append(parse_cart_line(item))
        except ValidationError as e:
            raise APIError(
                400,
                f"Cart item {index + 1} is malformed",
                "VALIDATION_ERROR",
                {"errors": [err.get("msg") for err in e.errors()]},
            )

    for line in lines:
        if isinstance(line, CustomCartLine) and is_blank(line.custom_service_name):
            raise APIError(400, "Custom services must have a name", "INVALID_CUSTOM_SERVICE")

    catalog_lines = [line for line in lines if isinstance(line, CatalogCartLine)]
    service_map: Dict[int, Service] = {}
    if catalog_lines:
        requested_ids = [as_db_id(line.service_id) for line in catalog_lines]
        lookup_ids = {sid for sid in requested_ids if sid is not None}
        active_services = []
        if lookup_ids:
            active_services = db.query(Service).filter(
                Service.id.in_(lookup_ids),
                Service.is_active == True
            ).all()
        service_map = {svc.id: svc for svc in active_services}

        invalid_ids = [
            line.service_id for line, sid in zip(catalog_lines, requested_ids)
            if sid is None or sid not in service_map
        ]
        if invalid_ids:
            raise APIError(
                400,
                f"Some services are invalid or inactive: {', '.join(str(i) for i in invalid_ids)}",
                "INVALID_SERVICES",
                {"invalidServiceIds": invalid_ids},
            )

    return lines, service_map


# ============================================================================
# Cart line -> ServiceRequest
# ============================================================================

def reconcile_sub_services(selected: List[SubServiceSelection], catalog_sub_services: Optional[List[dict]]) -> List[dict]:
    """
    Match cart selections to the catalog by case-insensitive, trimmed name.
    Matches take the catalog's name, items and rate; quantity always comes from the cart.
    """
    catalog_index: Dict[str, dict] = {}
    for sub in catalog_sub_services or []:
        name = (sub.get("name") or "").strip().lower()
        if name and name not in catalog_index:
            catalog_index[name] = sub

    reconciled = []
    for selection in selected:
        match = catalog_index.get(selection.name.strip().lower())
        if match:
            entry = {
                "name": match["name"],
                "items": match.get("items") or 1,
                "rate": match.get("rate") or 0,
            }
        else:
            entry = {
                "name": selection.name,
                "items": selection.items or 1,
                "rate": selection.rate or 0,
            }
        entry["quantity"] = selection.quantity if selection.quantity is not None else 1
        reconciled.append(entry)
    return reconciled


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def build_service_request(
    contract: AMCContract,
    line: CartLine,
    service_map: Dict[int, Service],
    requested_fallback: datetime,
) -> Optional[ServiceRequest]:
    requested_date = _parse_date_field(line.requested_date, "requested_date") or requested_fallback
    common = dict(
        user_id=contract.user_id,
        user_name=contract.contact_person,
        user_phone=contract.contact_phone,
        user_email=contract.contact_email,
        address=contract.address,
        request_type="Quotation",
        requested_date=requested_date,
        status="Pending",
        number_of_units=line.units,
        payment_method="Cash On Delivery",
        amc_contract_id=contract.id,
    )

    if isinstance(line, CustomCartLine):
        name = line.custom_service_name.strip()
        description = _clean(line.custom_service_description)
        return ServiceRequest(
            **common,
            service_name=name,
            category_name=CUSTOM_SERVICE_CATEGORY,
            message=description or _clean(line.message),
            is_custom_service=True,
            custom_service_name=name,
            custom_service_description=description,
        )

    service = service_map.get(as_db_id(line.service_id))
    if service is None:
        return None

    sr = ServiceRequest(
        **common,
        service_id=service.id,
        service_name=_clean(line.service_name) or service.name,
        category_id=line.category_id or service.category_id,
        category_name=_clean(line.category_name) or (service.category.name if service.category else ""),
        message=_clean(line.message),
        is_custom_service=False,
    )
    if line.duration_type:
        sr.duration_type = line.duration_type
        sr.duration = line.duration or 1
    if line.number_of_persons:
        sr.number_of_persons = line.number_of_persons
    if line.selected_sub_services:
        sr.selected_sub_services = reconcile_sub_services(line.selected_sub_services, service.sub_services)
    if line.question_answers:
        sr.question_answers = [
            {
                "question": qa.question.strip(),
                "answer": qa.answer.strip(),
                "questionType": qa.question_type or "text",
            }
            for qa in line.question_answers
            if qa.question and qa.answer and qa.answer.strip()
        ]
    return sr


# ============================================================================
# Submission
# ============================================================================

def submit_contract(db: Session, payload: ContractSubmit, user: Optional[User] = None) -> Tuple[AMCContract, List[ServiceRequest]]:
    lines, service_map = validate_submission(db, payload)

    start_date = _parse_date_field(payload.start_date, "startDate")
    end_date = default_end_date(start_date, _parse_date_field(payload.end_date, "endDate"))

    try:
        contract = AMCContract(
            contract_number=next_contract_number(db),
            company_name=payload.company_name.strip(),
            contact_person=payload.contact_person.strip(),
            contact_phone=payload.contact_phone.strip(),
            contact_email=payload.contact_email.strip().lower(),
            address=payload.address.strip(),
            message=_clean(payload.message),
            user_id=user.id if user else None,
            start_date=start_date,
            end_date=end_date,
            status="Pending",
        )
        db.add(contract)
        db.flush()

        requested_fallback = start_date or datetime.utcnow()
        created: List[ServiceRequest] = []
        for line in lines:
            sr = build_service_request(contract, line, service_map, requested_fallback)
            if sr is None:
                continue
            db.add(sr)
            db.flush()
            created.append(sr)

        contract.service_requests = created
        db.flush()
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(contract)
    logger.info(f"AMC contract submitted: {contract.id} - {contract.contract_number} ({len(created)} services)")
    return contract, created


def cascade_cancellation(db: Session, contract: AMCContract) -> int:
    """Cancel every child request that is not already Completed or Cancelled"""
    updated = db.query(ServiceRequest).filter(
        ServiceRequest.amc_contract_id == contract.id,
        ServiceRequest.status.notin_(TERMINAL_REQUEST_STATUSES)
    ).update({"status": "Cancelled"}, synchronize_session="fetch")
    db.commit()
    return updated
