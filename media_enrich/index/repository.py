from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Iterable, Optional

from sqlalchemy import Select, and_, exists, or_, select
from sqlalchemy.orm import Session, sessionmaker

from media_enrich.core.models import (
    Album,
    Asset,
    AssetType,
    ExifInfo,
    Page,
    Pagination,
    WithoutProperty,
    WithProperty,
)

from .schema import AlbumRow, AssetRow, ExifRow, album_assets

logger = logging.getLogger(__name__)

_SAVABLE_ASSET_FIELDS = {
    "sidecar_path",
    "is_visible",
    "live_photo_video_id",
    "file_created_at",
    "file_modified_at",
    "duration",
}


def _utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite drops offsets on write, so everything is stored and returned as UTC.
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _to_asset(row: AssetRow) -> Asset:
    return Asset(
        id=row.id,
        owner_id=row.owner_id,
        type=AssetType(row.type),
        original_path=row.original_path,
        sidecar_path=row.sidecar_path,
        is_visible=row.is_visible,
        live_photo_video_id=row.live_photo_video_id,
        file_created_at=_utc(row.file_created_at),
        file_modified_at=_utc(row.file_modified_at),
        duration=row.duration,
    )


def _to_exif(row: ExifRow) -> ExifInfo:
    return ExifInfo(
        asset_id=row.asset_id,
        file_size_in_byte=row.file_size_in_byte,
        make=row.make,
        model=row.model,
        lens_model=row.lens_model,
        exif_image_width=row.exif_image_width,
        exif_image_height=row.exif_image_height,
        orientation=row.orientation,
        exposure_time=row.exposure_time,
        f_number=row.f_number,
        focal_length=row.focal_length,
        iso=row.iso,
        latitude=row.latitude,
        longitude=row.longitude,
        time_zone=row.time_zone,
        city=row.city,
        state=row.state,
        country=row.country,
        fps=row.fps,
        live_photo_cid=row.live_photo_cid,
        date_time_original=_utc(row.date_time_original),
        modify_date=_utc(row.modify_date),
    )


def _to_album(row: AlbumRow) -> Album:
    return Album(
        id=row.id,
        owner_id=row.owner_id,
        album_name=row.album_name,
        album_thumbnail_asset_id=row.album_thumbnail_asset_id,
        asset_ids=[asset.id for asset in row.assets],
    )


class SqlAssetRepository:
    """Asset access backed by the ``assets`` table, one short session per call."""

    def __init__(self, sessions: sessionmaker[Session]):
        self.sessions = sessions

    def _page(self, stmt: Select, pagination: Pagination) -> Page:
        if pagination.cursor is not None:
            stmt = stmt.where(AssetRow.id > pagination.cursor)
        stmt = stmt.order_by(AssetRow.id).limit(pagination.take + 1)
        with self.sessions() as session:
            rows = session.scalars(stmt).all()
            items = [_to_asset(row) for row in rows[: pagination.take]]
        has_next = len(rows) > pagination.take
        return Page(
            items=items,
            has_next_page=has_next,
            next_cursor=items[-1].id if has_next and items else None,
        )

    def get(self, asset_id: str) -> Optional[Asset]:
        with self.sessions() as session:
            row = session.get(AssetRow, asset_id)
            return _to_asset(row) if row else None

    def get_all(self, pagination: Pagination) -> Page:
        return self._page(select(AssetRow), pagination)

    def get_without(self, pagination: Pagination, property: WithoutProperty) -> Page:
        if property == WithoutProperty.EXIF:
            stmt = (
                select(AssetRow)
                .outerjoin(ExifRow, ExifRow.asset_id == AssetRow.id)
                .where(ExifRow.asset_id.is_(None), AssetRow.is_visible.is_(True))
            )
        elif property == WithoutProperty.SIDECAR:
            stmt = select(AssetRow).where(
                or_(AssetRow.sidecar_path.is_(None), AssetRow.sidecar_path == ""),
                AssetRow.is_visible.is_(True),
            )
        else:
            raise ValueError(f"Invalid getWithout property: {property}")
        return self._page(stmt, pagination)

    def get_with(self, pagination: Pagination, property: WithProperty) -> Page:
        if property == WithProperty.SIDECAR:
            stmt = select(AssetRow).where(
                AssetRow.sidecar_path.is_not(None),
                AssetRow.sidecar_path != "",
                AssetRow.is_visible.is_(True),
            )
        else:
            raise ValueError(f"Invalid getWith property: {property}")
        return self._page(stmt, pagination)

    def get_first_asset_for_album(self, album_id: str) -> Optional[Asset]:
        stmt = (
            select(AssetRow)
            .join(album_assets, album_assets.c.asset_id == AssetRow.id)
            .where(album_assets.c.album_id == album_id)
            .order_by(AssetRow.file_created_at.desc(), AssetRow.id)
            .limit(1)
        )
        with self.sessions() as session:
            row = session.scalar(stmt)
            return _to_asset(row) if row else None

    def save(self, asset_id: str, **fields: Any) -> Asset:
        unknown = set(fields) - _SAVABLE_ASSET_FIELDS
        if unknown:
            raise ValueError(f"Cannot update asset fields: {', '.join(sorted(unknown))}")
        with self.sessions() as session:
            row = session.get(AssetRow, asset_id)
            if row is None:
                raise ValueError(f"Asset not found: {asset_id}")
            for name, value in fields.items():
                if isinstance(value, datetime):
                    value = _utc(value)
                setattr(row, name, value)
            session.commit()
            return _to_asset(row)

    def find_live_photo_match(
        self,
        *,
        live_photo_cid: str,
        owner_id: str,
        type: AssetType,
        other_asset_id: Optional[str] = None,
    ) -> Optional[Asset]:
        # Lowest id wins when re-imported content shares an identifier.
        conditions = [
            ExifRow.live_photo_cid == live_photo_cid,
            AssetRow.owner_id == owner_id,
            AssetRow.type == type.value,
        ]
        if other_asset_id is not None:
            conditions.append(AssetRow.id != other_asset_id)
        stmt = (
            select(AssetRow)
            .join(ExifRow, ExifRow.asset_id == AssetRow.id)
            .where(*conditions)
            .order_by(AssetRow.id)
            .limit(1)
        )
        with self.sessions() as session:
            row = session.scalar(stmt)
            return _to_asset(row) if row else None

    def find_linked_stills(self, video_id: str) -> list[Asset]:
        stmt = (
            select(AssetRow)
            .where(AssetRow.live_photo_video_id == video_id)
            .order_by(AssetRow.id)
        )
        with self.sessions() as session:
            return [_to_asset(row) for row in session.scalars(stmt).all()]

    def create_many(self, assets: Iterable[Asset]) -> list[Asset]:
        """Insert assets whose id and path are not already known; return the inserted ones."""
        created: list[Asset] = []
        with self.sessions() as session:
            for asset in assets:
                duplicate = session.scalar(
                    select(AssetRow.id).where(
                        or_(AssetRow.id == asset.id, AssetRow.original_path == asset.original_path)
                    )
                )
                if duplicate is not None:
                    continue
                session.add(
                    AssetRow(
                        id=asset.id,
                        owner_id=asset.owner_id,
                        type=asset.type.value,
                        original_path=asset.original_path,
                        sidecar_path=asset.sidecar_path,
                        is_visible=asset.is_visible,
                        live_photo_video_id=asset.live_photo_video_id,
                        file_created_at=_utc(asset.file_created_at),
                        file_modified_at=_utc(asset.file_modified_at),
                        duration=asset.duration,
                    )
                )
                session.flush()
                created.append(asset)
            session.commit()
        logger.info("Registered %d new assets", len(created))
        return created


class SqlExifRepository:
    def __init__(self, sessions: sessionmaker[Session]):
        self.sessions = sessions

    def get(self, asset_id: str) -> Optional[ExifInfo]:
        with self.sessions() as session:
            row = session.get(ExifRow, asset_id)
            return _to_exif(row) if row else None

    def upsert(self, exif: ExifInfo) -> None:
        """Insert or wholly replace the metadata record of an asset."""
        values = exif.model_dump(exclude={"asset_id"})
        with self.sessions() as session:
            row = session.get(ExifRow, exif.asset_id)
            if row is None:
                row = ExifRow(asset_id=exif.asset_id)
                session.add(row)
            for name, value in values.items():
                if isinstance(value, datetime):
                    value = _utc(value)
                setattr(row, name, value)
            session.commit()


class SqlAlbumRepository:
    def __init__(self, sessions: sessionmaker[Session]):
        self.sessions = sessions

    def get(self, album_id: str) -> Optional[Album]:
        with self.sessions() as session:
            row = session.get(AlbumRow, album_id)
            return _to_album(row) if row else None

    def get_invalid_thumbnail(self) -> list[str]:
        """Albums whose thumbnail is unset while holding assets, or no longer a member."""
        has_assets = exists().where(album_assets.c.album_id == AlbumRow.id)
        thumbnail_is_member = exists().where(
            and_(
                album_assets.c.album_id == AlbumRow.id,
                album_assets.c.asset_id == AlbumRow.album_thumbnail_asset_id,
            )
        )
        stmt = (
            select(AlbumRow.id)
            .where(
                or_(
                    and_(AlbumRow.album_thumbnail_asset_id.is_(None), has_assets),
                    and_(AlbumRow.album_thumbnail_asset_id.is_not(None), ~thumbnail_is_member),
                )
            )
            .order_by(AlbumRow.id)
        )
        with self.sessions() as session:
            return list(session.scalars(stmt).all())

    def save(self, album_id: str, *, album_thumbnail_asset_id: Optional[str]) -> Album:
        with self.sessions() as session:
            row = session.get(AlbumRow, album_id)
            if row is None:
                raise ValueError(f"Album not found: {album_id}")
            row.album_thumbnail_asset_id = album_thumbnail_asset_id
            session.commit()
            return _to_album(row)

    def create(self, *, owner_id: str, album_name: str, asset_ids: list[str]) -> Album:
        with self.sessions() as session:
            found = [session.get(AssetRow, asset_id) for asset_id in asset_ids]
            assets = [asset for asset in found if asset is not None]
            row = AlbumRow(
                id=str(uuid.uuid4()),
                owner_id=owner_id,
                album_name=album_name,
                album_thumbnail_asset_id=assets[0].id if assets else None,
            )
            row.assets = assets
            session.add(row)
            session.commit()
            return _to_album(row)
