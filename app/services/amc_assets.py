import logging
from typing import Any, List, Optional, Tuple

from fastapi import UploadFile
from pydantic import ValidationError
from sqlalchemy.orm import Session

from app.models import AMCAssetServiceLink, Service
from app.schemas import LinkedServiceInput
from app.services import s3
from app.utils.responses import APIError
from app.utils.validators import as_db_id, is_blank, parse_datetime, parse_json_list

logger = logging.getLogger(__name__)


def normalize_linked_services(raw: Any) -> List[LinkedServiceInput]:
    """
    Linked services arrive as a native list (JSON bodies) or a JSON-encoded
    string (multipart forms). Malformed payloads, and malformed entries within
    an otherwise valid list, normalize to nothing rather than failing the request.
    """
    items = parse_json_list(raw)
    if items is None:
        logger.warning("Ignoring malformed linkedServices payload")
        return []

    entries = []
    for item in items:
        if isinstance(item, (int, str)) and not isinstance(item, bool):
            item = {"serviceId": item}
        if not isinstance(item, dict):
            continue
        try:
            entries.append(LinkedServiceInput.model_validate(item))
        except ValidationError:
            logger.warning(f"Ignoring malformed linked service entry: {item}")
    return entries


def _scheduled_dates(values: Optional[List[str]]) -> List[str]:
    dates = []
    for value in values or []:
        parsed = parse_datetime(value)
        if parsed is not None:
            dates.append(parsed.date().isoformat())
    return dates


def build_service_links(db: Session, entries: List[LinkedServiceInput]) -> List[AMCAssetServiceLink]:
    """
    Keep catalog entries that reference an existing, active service and custom
    entries that carry a name. The display name always ends up populated.
    """
    catalog_ids = set()
    for entry in entries:
        service_id = None if entry.is_custom else as_db_id(entry.service_id)
        if service_id is not None:
            catalog_ids.add(service_id)

    services = {}
    if catalog_ids:
        active = db.query(Service).filter(Service.id.in_(catalog_ids), Service.is_active == True).all()
        services = {svc.id: svc for svc in active}

    links = []
    for entry in entries:
        if entry.is_custom:
            if is_blank(entry.name):
                continue
            service = None
            name = entry.name.strip()
        else:
            service = services.get(as_db_id(entry.service_id))
            if service is None:
                continue
            name = service.name

        links.append(AMCAssetServiceLink(
            service_id=service.id if service else None,
            is_custom=entry.is_custom,
            service_name=name,
            number_of_times=entry.number_of_times or 1,
            scheduled_dates=_scheduled_dates(entry.scheduled_dates),
            sort_order=len(links),
        ))
    return links


async def upload_images(files: List[UploadFile]) -> List[dict]:
    """
    Upload images one after another. If any upload fails, objects already
    uploaded by this call are deleted (best effort) before the error propagates.
    """
    for file in files:
        if file.content_type not in s3.ALLOWED_IMAGE_TYPES:
            raise APIError(
                400,
                f"Invalid file type. Allowed: {', '.join(s3.ALLOWED_IMAGE_TYPES)}",
                "INVALID_FILE_TYPE",
            )

    uploaded: List[dict] = []
    try:
        for file in files:
            content = await file.read()
            url = s3.upload_bytes(content, file.filename or "image.jpg", file.content_type, folder="amc-assets")
            uploaded.append({"url": url, "filename": file.filename or "image.jpg"})
    except Exception:
        if uploaded:
            removed = s3.delete_urls([img["url"] for img in uploaded])
            logger.warning(f"Image upload failed; removed {removed} of {len(uploaded)} already-uploaded objects")
        raise
    return uploaded


def split_form(form) -> Tuple[dict, List[UploadFile]]:
    """Separate plain fields from uploaded files in a multipart form"""
    fields = {}
    files = []
    for key, value in form.multi_items():
        if hasattr(value, "filename") and hasattr(value, "read"):
            if value.filename:
                files.append(value)
        else:
            fields[key] = value
    return fields, files
