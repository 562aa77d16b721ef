from __future__ import annotations

import hashlib
import logging
from datetime import datetime, timezone
from pathlib import Path

from media_enrich.core.models import Asset, AssetType

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = {
    ".jpg",
    ".jpeg",
    ".png",
    ".webp",
    ".heic",
    ".heif",
    ".tif",
    ".tiff",
    ".dng",
    ".gif",
}
VIDEO_EXTENSIONS = {".mp4", ".mov", ".m4v", ".avi", ".mkv", ".3gp", ".webm"}


def _hash_file(path: Path, chunk_size: int = 1024 * 1024) -> str:
    digest = hashlib.sha256()
    with path.open("rb") as infile:
        for chunk in iter(lambda: infile.read(chunk_size), b""):
            digest.update(chunk)
    return digest.hexdigest()


def asset_type_for(path: Path) -> AssetType | None:
    suffix = path.suffix.lower()
    if suffix in IMAGE_EXTENSIONS:
        return AssetType.IMAGE
    if suffix in VIDEO_EXTENSIONS:
        return AssetType.VIDEO
    return None


def scan_media(root: str | Path, owner_id: str) -> list[Asset]:
    """Scan a directory tree for photos and videos and return Asset snapshots."""
    root_path = Path(root)
    assets: list[Asset] = []
    for path in sorted(root_path.rglob("*")):
        if not path.is_file():
            continue
        asset_type = asset_type_for(path)
        if asset_type is None:
            continue
        stat = path.stat()
        modified = datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc)
        created_ts = getattr(stat, "st_birthtime", None)
        created = (
            datetime.fromtimestamp(created_ts, tz=timezone.utc) if created_ts else modified
        )
        assets.append(
            Asset(
                id=_hash_file(path),
                owner_id=owner_id,
                type=asset_type,
                original_path=str(path.resolve()),
                file_created_at=created,
                file_modified_at=modified,
            )
        )
    logger.info("Scanned %d media files under %s", len(assets), root_path)
    return assets


def register_assets(assets_repo, assets: list[Asset]) -> list[Asset]:
    """Insert assets the repository does not know yet; return the new ones."""
    return assets_repo.create_many(assets)
