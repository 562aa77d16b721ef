"""Capability sets consumed by the pipeline components."""

from __future__ import annotations

from typing import Any, Optional, Protocol

from media_enrich.core.models import (
    Album,
    Asset,
    AssetType,
    ExifInfo,
    GeocodeResult,
    Page,
    Pagination,
    WithoutProperty,
    WithProperty,
)
from media_enrich.jobs.types import Job, QueueName


class AssetRepository(Protocol):
    def get_all(self, pagination: Pagination) -> Page: ...

    def get_without(self, pagination: Pagination, property: WithoutProperty) -> Page: ...

    def get_with(self, pagination: Pagination, property: WithProperty) -> Page: ...

    def get_first_asset_for_album(self, album_id: str) -> Optional[Asset]: ...

    def get(self, asset_id: str) -> Optional[Asset]: ...

    def save(self, asset_id: str, **fields: Any) -> Asset: ...

    def find_live_photo_match(
        self,
        *,
        live_photo_cid: str,
        owner_id: str,
        type: AssetType,
        other_asset_id: Optional[str] = None,
    ) -> Optional[Asset]: ...

    def find_linked_stills(self, video_id: str) -> list[Asset]: ...


class ExifRepository(Protocol):
    def upsert(self, exif: ExifInfo) -> None: ...


class AlbumRepository(Protocol):
    def get_invalid_thumbnail(self) -> list[str]: ...

    def save(self, album_id: str, *, album_thumbnail_asset_id: Optional[str]) -> Album: ...

    def create(self, *, owner_id: str, album_name: str, asset_ids: list[str]) -> Album: ...


class JobRepository(Protocol):
    async def queue(self, job: Job) -> None: ...

    async def pause(self, name: QueueName) -> None: ...

    async def resume(self, name: QueueName) -> None: ...


class GeocodingRepository(Protocol):
    def init(self) -> None: ...

    def delete_cache(self) -> None: ...

    def reverse_geocode(self, latitude: float, longitude: float) -> GeocodeResult: ...


class TimezoneLookup(Protocol):
    def __call__(self, latitude: float, longitude: float) -> Optional[str]: ...

