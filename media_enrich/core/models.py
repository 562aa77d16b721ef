from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class AssetType(str, Enum):
    IMAGE = "IMAGE"
    VIDEO = "VIDEO"


class WithoutProperty(str, Enum):
    EXIF = "exif"
    SIDECAR = "sidecar"


class WithProperty(str, Enum):
    SIDECAR = "sidecar"


class Asset(BaseModel):
    id: str
    owner_id: str
    type: AssetType
    original_path: str
    sidecar_path: Optional[str] = None
    is_visible: bool = True
    live_photo_video_id: Optional[str] = None
    file_created_at: datetime
    file_modified_at: datetime
    duration: Optional[str] = None  # hh:mm:ss.SSS


class ExifInfo(BaseModel):
    """Derived metadata record, one per asset."""

    asset_id: str
    file_size_in_byte: Optional[int] = None
    make: Optional[str] = None
    model: Optional[str] = None
    lens_model: Optional[str] = None
    exif_image_width: Optional[int] = None
    exif_image_height: Optional[int] = None
    orientation: Optional[str] = None
    exposure_time: Optional[float] = None
    f_number: Optional[float] = None
    focal_length: Optional[float] = None
    iso: Optional[int] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    time_zone: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None
    fps: Optional[int] = None
    live_photo_cid: Optional[str] = None
    date_time_original: Optional[datetime] = None
    modify_date: Optional[datetime] = None


class Album(BaseModel):
    id: str
    owner_id: str
    album_name: str
    album_thumbnail_asset_id: Optional[str] = None
    asset_ids: list[str] = Field(default_factory=list)


class GeocodeResult(BaseModel):
    country: Optional[str] = None
    state: Optional[str] = None
    city: Optional[str] = None


class Pagination(BaseModel):
    """Keyset cursor: rows with an id strictly greater than ``cursor``."""

    take: int
    cursor: Optional[str] = None


class Page(BaseModel):
    items: list[Asset] = Field(default_factory=list)
    has_next_page: bool = False
    next_cursor: Optional[str] = None
