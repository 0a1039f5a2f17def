from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session, selectinload
from typing import Tuple
import json
import logging

from app.database import get_db
from app.models import AMCAsset, AMCAssetServiceLink, AMCContract, User
from app.serializers import asset_to_dict
from app.services import s3
from app.services.amc_assets import build_service_links, normalize_linked_services, split_form, upload_images
from app.api.auth import require_admin
from app.utils.responses import APIError, created_response, success_response
from app.utils.validators import is_blank, parse_id, parse_json_list

logger = logging.getLogger(__name__)

router = APIRouter()


async def _read_body(request: Request) -> Tuple[dict, list]:
    """Assets accept multipart/form-data (with images) or a plain JSON body"""
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("multipart/form-data") or content_type.startswith("application/x-www-form-urlencoded"):
        form = await request.form()
        return split_form(form)

    raw = await request.body()
    if not raw:
        return {}, []
    try:
        body = json.loads(raw)
    except ValueError:
        raise APIError(400, "Request body must be valid JSON", "VALIDATION_ERROR")
    if not isinstance(body, dict):
        raise APIError(400, "Request body must be a JSON object", "VALIDATION_ERROR")
    return body, []


def _get_contract(db: Session, contract_id: str) -> AMCContract:
    cid = parse_id(contract_id, "INVALID_ID", "Invalid contract ID")
    contract = db.query(AMCContract).filter(AMCContract.id == cid).first()
    if not contract:
        raise APIError(404, "AMC contract not found", "CONTRACT_NOT_FOUND")
    return contract


def _get_asset(db: Session, contract_id: str, asset_id: str) -> AMCAsset:
    cid = parse_id(contract_id, "INVALID_ID", "Invalid contract ID")
    aid = parse_id(asset_id, "INVALID_ID", "Invalid asset ID")
    asset = db.query(AMCAsset).options(
        selectinload(AMCAsset.linked_services).selectinload(AMCAssetServiceLink.service)
    ).filter(AMCAsset.id == aid, AMCAsset.amc_contract_id == cid).first()
    if not asset:
        raise APIError(404, "Asset not found", "ASSET_NOT_FOUND")
    return asset


def _clean_description(value):
    if not isinstance(value, str) or is_blank(value):
        return None
    return value.strip()


def _commit_or_discard(db: Session, uploaded: list) -> None:
    """Commit; if that fails, images uploaded for this change are removed again"""
    try:
        db.commit()
    except Exception:
        db.rollback()
        urls = [img["url"] for img in uploaded if img.get("url")]
        if urls:
            logger.warning(f"Commit failed, removing {len(urls)} uploaded images")
            s3.delete_urls(urls)
        raise


def _replace_links(db: Session, asset: AMCAsset, raw_links) -> None:
    asset.linked_services = build_service_links(db, normalize_linked_services(raw_links))


@router.post("/{contract_id}/assets")
async def create_asset(
    contract_id: str,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin)
):
    """Create an asset under a contract, uploading any attached images"""
    parse_id(contract_id, "INVALID_ID", "Invalid contract ID")
    fields, files = await _read_body(request)

    name = fields.get("name")
    if not isinstance(name, str) or is_blank(name):
        raise APIError(400, "Asset name is required", "MISSING_NAME")

    contract = _get_contract(db, contract_id)
    links = build_service_links(db, normalize_linked_services(fields.get("linkedServices")))
    images = await upload_images(files) if files else []

    asset = AMCAsset(
        amc_contract_id=contract.id,
        name=name.strip(),
        description=_clean_description(fields.get("description")),
        images=images,
        linked_services=links,
    )
    db.add(asset)
    _commit_or_discard(db, images)

    asset = _get_asset(db, contract_id, str(asset.id))
    logger.info(f"Asset created: {asset.id} for contract {contract.contract_number} ({len(images)} images)")
    return created_response("Asset created successfully", {"asset": asset_to_dict(asset)})


@router.get("/{contract_id}/assets")
async def list_assets(
    contract_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin)
):
    contract = _get_contract(db, contract_id)
    assets = db.query(AMCAsset).options(
        selectinload(AMCAsset.linked_services).selectinload(AMCAssetServiceLink.service)
    ).filter(AMCAsset.amc_contract_id == contract.id).order_by(
        AMCAsset.created_at.desc(), AMCAsset.id.desc()
    ).all()

    return success_response("Assets retrieved successfully", {
        "assets": [asset_to_dict(a) for a in assets],
        "count": len(assets),
    })


@router.put("/{contract_id}/assets/{asset_id}")
async def update_asset(
    contract_id: str,
    asset_id: str,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin)
):
    """Patch name/description, drop images listed in removeImages, append new uploads"""
    fields, files = await _read_body(request)
    asset = _get_asset(db, contract_id, asset_id)

    if "name" in fields:
        name = fields.get("name")
        if not isinstance(name, str) or is_blank(name):
            raise APIError(400, "Asset name cannot be empty", "MISSING_NAME")
        asset.name = name.strip()
    if "description" in fields:
        asset.description = _clean_description(fields.get("description"))

    images = list(asset.images or [])
    removed_urls = []
    remove = parse_json_list(fields.get("removeImages"))
    if remove:
        to_remove = {url for url in remove if isinstance(url, str)}
        removed_urls = [img["url"] for img in images if img.get("url") in to_remove]
        images = [img for img in images if img.get("url") not in to_remove]

    uploaded = await upload_images(files) if files else []
    asset.images = images + uploaded

    if "linkedServices" in fields:
        _replace_links(db, asset, fields.get("linkedServices"))

    _commit_or_discard(db, uploaded)

    if removed_urls:
        s3.delete_urls(removed_urls)

    asset = _get_asset(db, contract_id, asset_id)
    logger.info(f"Asset updated: {asset.id}")
    return success_response("Asset updated successfully", {"asset": asset_to_dict(asset)})


@router.delete("/{contract_id}/assets/{asset_id}")
async def delete_asset(
    contract_id: str,
    asset_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin)
):
    asset = _get_asset(db, contract_id, asset_id)
    image_urls = [img.get("url") for img in (asset.images or []) if img.get("url")]

    db.delete(asset)
    db.commit()

    if image_urls:
        removed = s3.delete_urls(image_urls)
        logger.info(f"Removed {removed}/{len(image_urls)} images of deleted asset {asset_id}")

    logger.info(f"Asset deleted: {asset_id} from contract {contract_id}")
    return success_response("Asset deleted successfully")


@router.put("/{contract_id}/assets/{asset_id}/link-services")
async def link_services(
    contract_id: str,
    asset_id: str,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin)
):
    """Replace the asset's linked services wholesale"""
    fields, _ = await _read_body(request)
    asset = _get_asset(db, contract_id, asset_id)

    _replace_links(db, asset, fields.get("linkedServices"))
    db.commit()

    asset = _get_asset(db, contract_id, asset_id)
    logger.info(f"Asset {asset.id} linked to {len(asset.linked_services)} services")
    return success_response("Services linked successfully", {"asset": asset_to_dict(asset)})
