from __future__ import annotations

from enum import Enum
from typing import Union

from pydantic import BaseModel, Field

from media_enrich.core.models import Asset, AssetType


class QueueName(str, Enum):
    METADATA_EXTRACTION = "metadata-extraction"
    SIDECAR = "sidecar"
    STORAGE_TEMPLATE_MIGRATION = "storage-template-migration"
    SEARCH = "search"


class JobName(str, Enum):
    QUEUE_METADATA_EXTRACTION = "queue-metadata-extraction"
    EXIF_EXTRACTION = "metadata-extraction"
    EXTRACT_VIDEO_METADATA = "extract-video-metadata"
    QUEUE_SIDECAR = "queue-sidecar"
    SIDECAR_DISCOVERY = "sidecar-discovery"
    SIDECAR_SYNC = "sidecar-sync"
    STORAGE_TEMPLATE_MIGRATION_SINGLE = "storage-template-migration-single"
    SEARCH_INDEX_ALBUM = "search-index-album"


JOBS_TO_QUEUE: dict[JobName, QueueName] = {
    JobName.QUEUE_METADATA_EXTRACTION: QueueName.METADATA_EXTRACTION,
    JobName.EXIF_EXTRACTION: QueueName.METADATA_EXTRACTION,
    JobName.EXTRACT_VIDEO_METADATA: QueueName.METADATA_EXTRACTION,
    JobName.QUEUE_SIDECAR: QueueName.SIDECAR,
    JobName.SIDECAR_DISCOVERY: QueueName.SIDECAR,
    JobName.SIDECAR_SYNC: QueueName.SIDECAR,
    JobName.STORAGE_TEMPLATE_MIGRATION_SINGLE: QueueName.STORAGE_TEMPLATE_MIGRATION,
    JobName.SEARCH_INDEX_ALBUM: QueueName.SEARCH,
}

# Scan job started by an operator "start" command on each queue.
QUEUE_SCAN_JOBS: dict[QueueName, JobName] = {
    QueueName.METADATA_EXTRACTION: JobName.QUEUE_METADATA_EXTRACTION,
    QueueName.SIDECAR: JobName.QUEUE_SIDECAR,
}


class BaseJob(BaseModel):
    force: bool = False


class AssetJob(BaseModel):
    asset: Asset


class EntityJob(BaseModel):
    ids: list[str] = Field(default_factory=list)


JobData = Union[AssetJob, EntityJob, BaseJob]


class Job(BaseModel):
    name: JobName
    data: JobData = Field(default_factory=BaseJob)

    @property
    def queue_name(self) -> QueueName:
        return JOBS_TO_QUEUE[self.name]


def extraction_job_for(asset: Asset) -> Job:
    """Return the metadata extraction job matching the asset's type."""
    name = (
        JobName.EXTRACT_VIDEO_METADATA
        if asset.type == AssetType.VIDEO
        else JobName.EXIF_EXTRACTION
    )
    return Job(name=name, data=AssetJob(asset=asset))
