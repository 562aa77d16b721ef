from __future__ import annotations

import asyncio
import logging

from media_enrich.core.interfaces import AlbumRepository, AssetRepository, JobRepository
from media_enrich.core.models import Album
from media_enrich.jobs.types import EntityJob, Job, JobName

logger = logging.getLogger(__name__)


class AlbumService:
    """Album bookkeeping that depends on asset state: thumbnails and search indexing."""

    def __init__(
        self,
        albums: AlbumRepository,
        assets: AssetRepository,
        jobs: JobRepository,
    ):
        self.albums = albums
        self.assets = assets
        self.jobs = jobs

    def update_invalid_thumbnails(self) -> int:
        invalid_album_ids = self.albums.get_invalid_thumbnail()
        for album_id in invalid_album_ids:
            thumbnail = self.assets.get_first_asset_for_album(album_id)
            self.albums.save(
                album_id, album_thumbnail_asset_id=thumbnail.id if thumbnail else None
            )
        if invalid_album_ids:
            logger.info("Updated thumbnails for %d albums", len(invalid_album_ids))
        return len(invalid_album_ids)

    async def create_album(
        self, owner_id: str, album_name: str, asset_ids: list[str] | None = None
    ) -> Album:
        album = await asyncio.to_thread(
            self.albums.create,
            owner_id=owner_id,
            album_name=album_name,
            asset_ids=list(asset_ids or []),
        )
        await self.jobs.queue(
            Job(name=JobName.SEARCH_INDEX_ALBUM, data=EntityJob(ids=[album.id]))
        )
        return album
