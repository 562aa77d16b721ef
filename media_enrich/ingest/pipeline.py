from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path

from sqlalchemy.engine import Engine

from media_enrich.core.env import PipelineConfig
from media_enrich.index import (
    AlbumService,
    SqlAlbumRepository,
    SqlAssetRepository,
    SqlExifRepository,
    init_db,
    session_factory,
)
from media_enrich.jobs import QUEUE_SCAN_JOBS, BaseJob, Job, JobQueue, QueueName

from .geocoding import LocalGeocodingRepository
from .processor import MetadataExtractionProcessor
from .scanner import register_assets, scan_media
from .sidecar import SidecarProcessor

logger = logging.getLogger(__name__)


@dataclass
class Pipeline:
    """Everything a process needs to run the enrichment jobs."""

    config: PipelineConfig
    engine: Engine
    queue: JobQueue
    assets: SqlAssetRepository
    exif: SqlExifRepository
    albums: AlbumService
    geocoding: LocalGeocodingRepository
    metadata: MetadataExtractionProcessor
    sidecar: SidecarProcessor

    async def start(self) -> None:
        await self.queue.start()
        await self.metadata.init()

    async def stop(self) -> None:
        await self.queue.stop()

    async def start_scan(self, name: QueueName, *, force: bool = False) -> Job:
        job = Job(name=QUEUE_SCAN_JOBS[name], data=BaseJob(force=force))
        await self.queue.queue(job)
        return job

    async def enrich_directory(
        self, root: str | Path, owner_id: str, *, force: bool = False
    ) -> int:
        """Scan ``root``, register new assets and run both scans until the queue drains."""
        registered = await asyncio.to_thread(
            lambda: register_assets(self.assets, scan_media(root, owner_id))
        )
        await self.start_scan(QueueName.SIDECAR, force=force)
        await self.queue.wait_until_idle()
        await self.start_scan(QueueName.METADATA_EXTRACTION, force=force)
        await self.queue.wait_until_idle()
        await asyncio.to_thread(self.albums.update_invalid_thumbnails)
        return len(registered)


def build_pipeline(config: PipelineConfig, **processor_overrides) -> Pipeline:
    """Wire repositories, processors and the job queue from ``config``.

    ``processor_overrides`` is forwarded to :class:`MetadataExtractionProcessor`
    (``tag_reader``, ``prober``, ``time_zone_lookup``).
    """
    engine = init_db(config.database_url)
    sessions = session_factory(engine)
    assets = SqlAssetRepository(sessions)
    exif = SqlExifRepository(sessions)
    queue = JobQueue()
    geocoding = LocalGeocodingRepository(config.geocoding_cache_dir, config.geocoding_source)

    metadata = MetadataExtractionProcessor(
        assets,
        exif,
        queue,
        geocoding,
        reverse_geocoding_enabled=config.reverse_geocoding_enabled,
        page_size=config.page_size,
        **processor_overrides,
    )
    metadata.register(
        queue,
        concurrency=config.metadata_concurrency,
        video_concurrency=config.video_metadata_concurrency,
    )
    sidecar = SidecarProcessor(assets, queue, page_size=config.page_size)
    sidecar.register(queue, concurrency=config.sidecar_concurrency)

    albums = AlbumService(SqlAlbumRepository(sessions), assets, queue)
    logger.debug("Pipeline built for %s", config.database_url)
    return Pipeline(
        config=config,
        engine=engine,
        queue=queue,
        assets=assets,
        exif=exif,
        albums=albums,
        geocoding=geocoding,
        metadata=metadata,
        sidecar=sidecar,
    )
