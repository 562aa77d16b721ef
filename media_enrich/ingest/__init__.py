"""Ingest pipeline: tag reading, metadata merging, geocoding and the job handlers."""

from .geocoding import IndexState, LocalGeocodingRepository, timezone_at
from .live_photos import LivePhotoPairer
from .merger import TagSources, merge_image_metadata, merge_video_metadata
from .pipeline import Pipeline, build_pipeline
from .processor import MetadataExtractionProcessor
from .scanner import IMAGE_EXTENSIONS, VIDEO_EXTENSIONS, register_assets, scan_media
from .sidecar import SidecarProcessor
from .tags import ExifDateTime, read_tags

__all__ = [
    "ExifDateTime",
    "IMAGE_EXTENSIONS",
    "IndexState",
    "LivePhotoPairer",
    "LocalGeocodingRepository",
    "MetadataExtractionProcessor",
    "Pipeline",
    "SidecarProcessor",
    "TagSources",
    "VIDEO_EXTENSIONS",
    "build_pipeline",
    "merge_image_metadata",
    "merge_video_metadata",
    "read_tags",
    "register_assets",
    "scan_media",
    "timezone_at",
]
