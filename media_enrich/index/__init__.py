"""Database layer for media_enrich."""

from .albums import AlbumService
from .repository import SqlAlbumRepository, SqlAssetRepository, SqlExifRepository
from .schema import (
    AlbumRow,
    AssetRow,
    Base,
    ExifRow,
    album_assets,
    create_engine_from_url,
    init_db,
    session_factory,
)

__all__ = [
    "AlbumRow",
    "AlbumService",
    "AssetRow",
    "Base",
    "ExifRow",
    "SqlAlbumRepository",
    "SqlAssetRepository",
    "SqlExifRepository",
    "album_assets",
    "create_engine_from_url",
    "init_db",
    "session_factory",
]
