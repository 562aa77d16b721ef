from __future__ import annotations

import asyncio
import logging
import os
from typing import Any, Callable, Dict, Optional

from media_enrich.core.errors import (
    FilesystemError,
    ProbeError,
    ReverseGeocodeError,
    TagReadError,
)
from media_enrich.core.interfaces import (
    AssetRepository,
    ExifRepository,
    GeocodingRepository,
    JobRepository,
    TimezoneLookup,
)
from media_enrich.core.models import Asset, ExifInfo, WithoutProperty
from media_enrich.jobs import (
    JOBS_ASSET_PAGINATION_SIZE,
    AssetJob,
    BaseJob,
    Job,
    JobName,
    JobQueue,
    QueueName,
    dispatch_pages,
    extraction_job_for,
    paginate,
)

from .geocoding import timezone_at
from .live_photos import LivePhotoPairer
from .merger import (
    TagSources,
    fill_missing_dimensions,
    merge_image_metadata,
    merge_video_metadata,
)
from .probe import probe_media
from .tags import read_tags

logger = logging.getLogger(__name__)

TagReader = Callable[[str], Dict[str, Any]]
Prober = Callable[[str], Dict[str, Any]]


def _file_size(path: str) -> int:
    try:
        return os.stat(path).st_size
    except OSError as exc:
        raise FilesystemError(f"Unable to stat {path}: {exc}") from exc


class MetadataExtractionProcessor:
    """Extracts metadata for images and videos and persists one record per asset.

    Each asset moves through: tags read, merged, geo-enriched, live-photo
    paired, persisted, then a storage template migration job is chained.
    """

    def __init__(
        self,
        assets: AssetRepository,
        exif: ExifRepository,
        jobs: JobRepository,
        geocoding: GeocodingRepository,
        *,
        reverse_geocoding_enabled: bool = True,
        page_size: int = JOBS_ASSET_PAGINATION_SIZE,
        tag_reader: TagReader = read_tags,
        prober: Prober = probe_media,
        time_zone_lookup: Optional[TimezoneLookup] = timezone_at,
    ):
        self.assets = assets
        self.exif = exif
        self.jobs = jobs
        self.geocoding = geocoding
        self.reverse_geocoding_enabled = reverse_geocoding_enabled
        self.page_size = page_size
        self.tag_reader = tag_reader
        self.prober = prober
        self.time_zone_lookup = time_zone_lookup
        self.pairer = LivePhotoPairer(assets)
        # Serializes pairing, which reads rows written by other extraction jobs.
        self._persist_lock = asyncio.Lock()

    def register(
        self, queue: JobQueue, *, concurrency: int = 4, video_concurrency: int = 2
    ) -> None:
        queue.register(JobName.QUEUE_METADATA_EXTRACTION, self.handle_queue_metadata_extraction)
        queue.register(JobName.EXIF_EXTRACTION, self.extract_exif_info, concurrency=concurrency)
        queue.register(
            JobName.EXTRACT_VIDEO_METADATA,
            self.extract_video_metadata,
            concurrency=video_concurrency,
        )

    async def init(self, delete_cache: bool = False) -> None:
        """Build (or rebuild) the reverse geocoding index with extraction paused."""
        if not self.reverse_geocoding_enabled:
            logger.warning("Reverse geocoding is disabled")
            return

        logger.info("Initializing reverse geocoding")
        try:
            await self.jobs.pause(QueueName.METADATA_EXTRACTION)
            try:
                if delete_cache:
                    await asyncio.to_thread(self.geocoding.delete_cache)
                await asyncio.to_thread(self.geocoding.init)
            finally:
                await self.jobs.resume(QueueName.METADATA_EXTRACTION)
        except Exception:
            logger.exception("Unable to initialize reverse geocoding")
            return
        logger.info("Reverse geocoding initialized")

    async def handle_queue_metadata_extraction(self, job: Job) -> None:
        data = job.data if isinstance(job.data, BaseJob) else BaseJob()
        if data.force:
            pages = paginate(self.page_size, self.assets.get_all)
        else:
            pages = paginate(
                self.page_size,
                lambda pagination: self.assets.get_without(pagination, WithoutProperty.EXIF),
            )
        emitted = await dispatch_pages(self.jobs, pages, extraction_job_for)
        logger.info("Queued metadata extraction for %d assets (force=%s)", emitted, data.force)

    async def extract_exif_info(self, job: Job) -> None:
        asset = _asset_of(job)
        if not asset.is_visible:
            return
        try:
            embedded = await self._read_tags(asset, asset.original_path)
            sidecar = (
                await self._read_tags(asset, asset.sidecar_path) if asset.sidecar_path else {}
            )
            file_size = await asyncio.to_thread(_file_size, asset.original_path)

            exif = merge_image_metadata(
                asset, TagSources(embedded=embedded, sidecar=sidecar), file_size=file_size
            )
            exif = await asyncio.to_thread(fill_missing_dimensions, exif, asset.original_path)
            exif = await self._apply_reverse_geocoding(asset, exif)
            asset = await self._persist(
                asset, exif, file_created_at=exif.date_time_original or asset.file_created_at
            )
        except Exception:
            logger.error(
                "Error extracting EXIF for asset %s at %s", asset.id, asset.original_path
            )
            raise
        await self._chain_migration(asset)

    async def extract_video_metadata(self, job: Job) -> None:
        asset = _asset_of(job)
        if not asset.is_visible:
            return
        try:
            file_size = await asyncio.to_thread(_file_size, asset.original_path)
            probe = await self._probe(asset)
            embedded = await self._read_tags(asset, asset.original_path)
            sidecar = (
                await self._read_tags(asset, asset.sidecar_path) if asset.sidecar_path else {}
            )

            video = await asyncio.to_thread(
                merge_video_metadata,
                asset,
                probe,
                TagSources(embedded=embedded, sidecar=sidecar),
                time_zone_lookup=self.time_zone_lookup,
            )
            exif = video.exif
            if exif.file_size_in_byte is None:
                exif = exif.model_copy(update={"file_size_in_byte": file_size})
            exif = await self._apply_reverse_geocoding(asset, exif)
            asset = await self._persist(
                asset, exif, duration=video.duration, file_created_at=video.file_created_at
            )
        except Exception:
            logger.error(
                "Error extracting video metadata for asset %s at %s",
                asset.id,
                asset.original_path,
            )
            raise
        await self._chain_migration(asset)

    async def _persist(self, asset: Asset, exif: ExifInfo, **fields: Any) -> Asset:
        async with self._persist_lock:
            return await asyncio.to_thread(self._store, asset, exif, fields)

    def _store(self, asset: Asset, exif: ExifInfo, fields: Dict[str, Any]) -> Asset:
        """Save the asset, then its record, then pair; an asset without a record is rescanned."""
        saved = self.assets.save(asset.id, **fields)
        self.exif.upsert(exif)
        if self.pairer.pair(asset, exif.live_photo_cid) is not None:
            saved = self.assets.get(asset.id) or saved
        return saved

    async def _probe(self, asset: Asset) -> Dict[str, Any]:
        try:
            return await asyncio.to_thread(self.prober, asset.original_path)
        except ProbeError as exc:
            logger.warning(
                "Probe failed for asset %s at %s: %s", asset.id, asset.original_path, exc
            )
            return {"format": {}, "streams": []}

    async def _read_tags(self, asset: Asset, path: str) -> Dict[str, Any]:
        try:
            return await asyncio.to_thread(self.tag_reader, path)
        except TagReadError as exc:
            logger.warning(
                "Tag parsing failed for asset %s at %s: %s", asset.id, path, exc
            )
            return {}

    async def _apply_reverse_geocoding(self, asset: Asset, exif: ExifInfo) -> ExifInfo:
        if not self.reverse_geocoding_enabled:
            return exif
        if exif.latitude is None or exif.longitude is None:
            return exif
        try:
            place = await asyncio.to_thread(
                self.geocoding.reverse_geocode, exif.latitude, exif.longitude
            )
        except ReverseGeocodeError as exc:
            logger.warning(
                "Unable to run reverse geocoding for asset %s at %s: %s",
                asset.id,
                asset.original_path,
                exc,
            )
            return exif
        return exif.model_copy(
            update={"city": place.city, "state": place.state, "country": place.country}
        )

    async def _chain_migration(self, asset: Asset) -> None:
        await self.jobs.queue(
            Job(name=JobName.STORAGE_TEMPLATE_MIGRATION_SINGLE, data=AssetJob(asset=asset))
        )


def _asset_of(job: Job) -> Asset:
    if not isinstance(job.data, AssetJob):
        raise TypeError(f"Job {job.name.value} requires an asset payload")
    return job.data.asset
