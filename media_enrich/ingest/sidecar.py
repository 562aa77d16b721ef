from __future__ import annotations

import asyncio
import logging
import os
from enum import Enum

from media_enrich.core.interfaces import AssetRepository, JobRepository
from media_enrich.core.models import WithoutProperty, WithProperty
from media_enrich.jobs import (
    JOBS_ASSET_PAGINATION_SIZE,
    AssetJob,
    BaseJob,
    Job,
    JobName,
    JobQueue,
    dispatch_pages,
    extraction_job_for,
    paginate,
)

logger = logging.getLogger(__name__)

SIDECAR_EXTENSION = ".xmp"


class SidecarStatus(str, Enum):
    MISSING = "missing"
    NOT_WRITABLE = "not-writable"
    FOUND = "found"


def sidecar_candidate(original_path: str) -> str:
    return f"{original_path}{SIDECAR_EXTENSION}"


def check_sidecar(path: str) -> SidecarStatus:
    if not os.path.isfile(path):
        return SidecarStatus.MISSING
    if not os.access(path, os.W_OK):
        return SidecarStatus.NOT_WRITABLE
    return SidecarStatus.FOUND


class SidecarProcessor:
    """Discovers ``<original>.xmp`` sidecars and re-queues extraction for assets that have one."""

    def __init__(
        self,
        assets: AssetRepository,
        jobs: JobRepository,
        *,
        page_size: int = JOBS_ASSET_PAGINATION_SIZE,
    ):
        self.assets = assets
        self.jobs = jobs
        self.page_size = page_size

    def register(self, queue: JobQueue, *, concurrency: int = 5) -> None:
        queue.register(JobName.QUEUE_SIDECAR, self.handle_queue_sidecar)
        queue.register(JobName.SIDECAR_SYNC, self.handle_sidecar_sync, concurrency=concurrency)
        queue.register(
            JobName.SIDECAR_DISCOVERY, self.handle_sidecar_discovery, concurrency=concurrency
        )

    async def handle_queue_sidecar(self, job: Job) -> None:
        data = job.data if isinstance(job.data, BaseJob) else BaseJob()
        if data.force:
            pages = paginate(
                self.page_size,
                lambda pagination: self.assets.get_with(pagination, WithProperty.SIDECAR),
            )
            name = JobName.SIDECAR_SYNC
        else:
            pages = paginate(
                self.page_size,
                lambda pagination: self.assets.get_without(pagination, WithoutProperty.SIDECAR),
            )
            name = JobName.SIDECAR_DISCOVERY
        emitted = await dispatch_pages(
            self.jobs, pages, lambda asset: Job(name=name, data=AssetJob(asset=asset))
        )
        logger.info("Queued %s for %d assets", name.value, emitted)

    async def handle_sidecar_sync(self, job: Job) -> None:
        if not isinstance(job.data, AssetJob):
            raise TypeError(f"Job {job.name.value} requires an asset payload")
        asset = job.data.asset
        if not asset.is_visible:
            return
        await self.jobs.queue(extraction_job_for(asset))

    async def handle_sidecar_discovery(self, job: Job) -> None:
        if not isinstance(job.data, AssetJob):
            raise TypeError(f"Job {job.name.value} requires an asset payload")
        asset = job.data.asset
        if not asset.is_visible or asset.sidecar_path:
            return

        candidate = sidecar_candidate(asset.original_path)
        status = await asyncio.to_thread(check_sidecar, candidate)
        if status == SidecarStatus.MISSING:
            return
        if status == SidecarStatus.NOT_WRITABLE:
            logger.error(
                "Unable to use sidecar for asset %s, file is not writable: %s",
                asset.id,
                candidate,
            )
            return

        asset = await asyncio.to_thread(self.assets.save, asset.id, sidecar_path=candidate)
        logger.debug("Discovered sidecar %s for asset %s", candidate, asset.id)
        await self.jobs.queue(extraction_job_for(asset))
