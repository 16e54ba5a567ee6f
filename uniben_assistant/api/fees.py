from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from uniben_assistant.api.dependencies import get_db, not_found, require_bursary_admin
from uniben_assistant.core.identity import Actor
from uniben_assistant.schemas import AcknowledgeRequest, FeesCatalogCreate, FeesCatalogUpdate
from uniben_assistant.utils.logging_utils import log_audit

router = APIRouter()


# Public
@router.get("")
async def list_catalogs(level: Optional[str] = None, session: Optional[str] = None,
                        active: Optional[bool] = None, db=Depends(get_db)):
    catalogs = await db.list_fees_catalogs(level=level, session=session, active=active)
    return {"success": True, "catalogs": catalogs}


@router.get("/find")
async def find_catalog(level: Optional[str] = None, session: Optional[str] = None, db=Depends(get_db)):
    catalog = await db.find_fees_catalog(level=level, session=session)
    if not catalog:
        raise not_found("No active fees catalog found")
    return {"success": True, "catalog": catalog}


@router.get("/new")
async def list_new_catalogs(db=Depends(get_db)):
    return {"success": True, "catalogs": await db.list_new_fees_catalogs()}


@router.get("/{catalog_id}")
async def get_catalog(catalog_id: str, db=Depends(get_db)):
    catalog = await db.get_fees_catalog(catalog_id)
    if not catalog:
        raise not_found("Fees catalog not found")
    return {"success": True, "catalog": catalog}


# Bursary / system admin
@router.post("", status_code=201)
async def create_catalog(payload: FeesCatalogCreate, actor: Actor = Depends(require_bursary_admin),
                         db=Depends(get_db)):
    doc = payload.model_dump()
    doc["createdBy"] = actor.id
    catalog = await db.create_fees_catalog(doc)
    log_audit("FEES_CATALOG_CREATED", actor.id, f"{catalog['id']} level={payload.level} session={payload.session}")
    return {"success": True, "catalog": catalog}


@router.patch("/acknowledge")
async def acknowledge_many(payload: AcknowledgeRequest, actor: Actor = Depends(require_bursary_admin),
                           db=Depends(get_db)):
    if not payload.ids:
        raise HTTPException(status_code=400, detail="ids array is required")
    modified = await db.acknowledge_fees_catalogs(payload.ids)
    return {"success": True, "modifiedCount": modified}


@router.put("/{catalog_id}")
async def update_catalog(catalog_id: str, payload: FeesCatalogUpdate,
                         actor: Actor = Depends(require_bursary_admin), db=Depends(get_db)):
    catalog = await db.update_fees_catalog(catalog_id, payload.model_dump(exclude_unset=True))
    if not catalog:
        raise not_found("Fees catalog not found")
    log_audit("FEES_CATALOG_UPDATED", actor.id, catalog_id)
    return {"success": True, "catalog": catalog}


@router.delete("/{catalog_id}")
async def delete_catalog(catalog_id: str, actor: Actor = Depends(require_bursary_admin),
                         db=Depends(get_db)):
    if not await db.delete_fees_catalog(catalog_id):
        raise not_found("Fees catalog not found")
    log_audit("FEES_CATALOG_DELETED", actor.id, catalog_id)
    return {"success": True, "message": "Fees catalog deleted"}


@router.patch("/{catalog_id}/acknowledge")
async def acknowledge_one(catalog_id: str, actor: Actor = Depends(require_bursary_admin),
                          db=Depends(get_db)):
    catalog = await db.update_fees_catalog(catalog_id, {"isNew": False})
    if not catalog:
        raise not_found("Fees catalog not found")
    return {"success": True, "catalog": catalog}
