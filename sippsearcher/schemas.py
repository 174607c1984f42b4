"""
Pydantic schemas for the SippSearcher API.
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field


class StoreCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    address: str = Field(..., min_length=1, max_length=500)
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    phone: Optional[str] = Field(default=None, max_length=50)


class StoreResponse(BaseModel):
    id: int
    name: str
    address: str
    latitude: float
    longitude: float
    phone: Optional[str] = None
    created_at: datetime


class StoreNearResponse(StoreResponse):
    distance: float


class InventoryItemResponse(BaseModel):
    id: int
    store_id: int
    drink_id: str
    size: str
    price: Optional[float] = None
    in_stock: bool
    last_updated: datetime
    updated_by: Optional[str] = None
    photo_path: Optional[str] = None
    verification_count: int


class IdResponse(BaseModel):
    id: int


class VerifyResponse(BaseModel):
    success: Literal[True]


class VisitorCountResponse(BaseModel):
    count: int


class GuestbookEntryCreate(BaseModel):
    # Missing, null and blank values are rejected by the route with a 400.
    name: Optional[str] = None
    message: Optional[str] = None


class GuestbookEntryResponse(BaseModel):
    id: int
    name: str
    message: str
    created_at: datetime


class ConfigResponse(BaseModel):
    googleMapsApiKey: str


class HealthResponse(BaseModel):
    status: Literal["ok"]
    timestamp: datetime
    database: str
    store_count: Optional[int] = None
