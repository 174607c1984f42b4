"""
HTTP routes for the SippSearcher API.
"""

from __future__ import annotations

import logging
import os
from datetime import datetime, timezone
from typing import Optional

from fastapi import (
    APIRouter,
    Depends,
    File,
    Form,
    HTTPException,
    Path,
    Request,
    UploadFile,
)
from fastapi.responses import FileResponse

from sippsearcher.config import Settings
from sippsearcher.db import DbClient
from sippsearcher.dependencies import (
    get_app_settings,
    get_db_client,
    get_flavor_catalog,
    get_photo_storage,
)
from sippsearcher.schemas import (
    ConfigResponse,
    GuestbookEntryCreate,
    GuestbookEntryResponse,
    HealthResponse,
    IdResponse,
    InventoryItemResponse,
    StoreCreate,
    StoreNearResponse,
    StoreResponse,
    VerifyResponse,
    VisitorCountResponse,
)
from sippsearcher.storage import InvalidUploadError, PhotoStorage

logger = logging.getLogger(__name__)

router = APIRouter()
site_router = APIRouter()


@router.get("/stores", response_model=list[StoreResponse])
async def list_stores(db: DbClient = Depends(get_db_client)):
    stores = await db.list_stores()
    return [store.as_dict() for store in stores]


@router.get(
    "/stores/near/{lat}/{lng}/{radius}", response_model=list[StoreNearResponse]
)
async def stores_near(
    lat: float = Path(..., ge=-90, le=90, allow_inf_nan=False),
    lng: float = Path(..., ge=-180, le=180, allow_inf_nan=False),
    radius: float = Path(..., gt=0, allow_inf_nan=False),
    db: DbClient = Depends(get_db_client),
):
    stores = await db.find_stores_near(lat, lng, radius)
    return [store.as_dict() for store in stores]


@router.post("/stores", response_model=IdResponse)
async def add_store(payload: StoreCreate, db: DbClient = Depends(get_db_client)):
    store_id = await db.add_store(
        payload.name,
        payload.address,
        payload.latitude,
        payload.longitude,
        payload.phone,
    )
    logger.info("Added store %s (%s)", store_id, payload.name)
    return IdResponse(id=store_id)


@router.get(
    "/stores/{store_id}/inventory", response_model=list[InventoryItemResponse]
)
async def store_inventory(store_id: int, db: DbClient = Depends(get_db_client)):
    items = await db.get_store_inventory(store_id)
    return [item.as_dict() for item in items]


@router.post("/inventory", response_model=IdResponse)
async def submit_inventory(
    store_id: int = Form(...),
    drink_id: str = Form(..., min_length=1),
    size: str = Form(..., min_length=1),
    price: Optional[float] = Form(None, ge=0),
    in_stock: bool = Form(True),
    updated_by: Optional[str] = Form(None),
    photo: Optional[UploadFile] = File(None),
    db: DbClient = Depends(get_db_client),
    photos: PhotoStorage = Depends(get_photo_storage),
):
    """
    Report a drink at a store. Resubmitting the same store, drink and size
    replaces the previous report.
    """
    photo_path = None
    if photo is not None and photo.filename:
        data = await photo.read()
        try:
            photo_path = photos.save(photo.filename, photo.content_type, data)
        except InvalidUploadError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc

    inventory_id = await db.upsert_inventory(
        store_id,
        drink_id,
        size,
        price,
        in_stock,
        updated_by or None,
        photo_path,
    )
    return IdResponse(id=inventory_id)


@router.post("/inventory/{inventory_id}/verify", response_model=VerifyResponse)
async def verify_inventory(
    inventory_id: int,
    request: Request,
    db: DbClient = Depends(get_db_client),
):
    """Record one confirmation. Unknown inventory ids surface as a storage error."""
    user_ip = request.client.host if request.client else None
    await db.add_verification(inventory_id, user_ip)
    return VerifyResponse(success=True)


@router.get("/flavors")
def flavors(catalog: dict = Depends(get_flavor_catalog)):
    return catalog


@router.get("/visitors", response_model=VisitorCountResponse)
async def visitor_count(db: DbClient = Depends(get_db_client)):
    return VisitorCountResponse(count=await db.get_visitor_count())


@router.post("/visitors", response_model=VisitorCountResponse)
async def count_visit(db: DbClient = Depends(get_db_client)):
    return VisitorCountResponse(count=await db.increment_visitor_count())


@router.get("/guestbook", response_model=list[GuestbookEntryResponse])
async def guestbook_entries(db: DbClient = Depends(get_db_client)):
    entries = await db.get_guestbook_entries()
    return [entry.as_dict() for entry in entries]


@router.post("/guestbook", response_model=IdResponse)
async def sign_guestbook(
    payload: GuestbookEntryCreate, db: DbClient = Depends(get_db_client)
):
    name = (payload.name or "").strip()
    message = (payload.message or "").strip()
    if not name or not message:
        raise HTTPException(status_code=400, detail="Name and message are required")
    entry_id = await db.add_guestbook_entry(name, message)
    return IdResponse(id=entry_id)


@router.get("/config", response_model=ConfigResponse)
def client_config(settings: Settings = Depends(get_app_settings)):
    return ConfigResponse(googleMapsApiKey=settings.google_maps_api_key)


@site_router.get("/", include_in_schema=False)
async def home(
    db: DbClient = Depends(get_db_client),
    settings: Settings = Depends(get_app_settings),
):
    visitors = await db.increment_visitor_count()
    index_path = os.path.join(settings.public_dir, "index.html")
    if os.path.isfile(index_path):
        return FileResponse(index_path)
    return {"name": "SippSearcher", "visitors": visitors}


@site_router.get(
    "/health", response_model=HealthResponse, response_model_exclude_none=True
)
async def health(db: DbClient = Depends(get_db_client)):
    store_count = await db.count_stores() if db.kind == "memory" else None
    return HealthResponse(
        status="ok",
        timestamp=datetime.now(timezone.utc),
        database=db.kind,
        store_count=store_count,
    )
