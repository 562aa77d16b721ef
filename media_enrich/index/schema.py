from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    create_engine,
    event,
    func,
    text,
)
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import (
    DeclarativeBase,
    Mapped,
    Session,
    mapped_column,
    relationship,
    sessionmaker,
)
from sqlalchemy.pool import StaticPool

convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


class Base(DeclarativeBase):
    metadata = MetaData(naming_convention=convention)


class AssetRow(Base):
    __tablename__ = "assets"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    owner_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    type: Mapped[str] = mapped_column(String, nullable=False)
    original_path: Mapped[str] = mapped_column(String, unique=True, nullable=False)
    sidecar_path: Mapped[Optional[str]] = mapped_column(String)
    is_visible: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=text("1"))
    live_photo_video_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("assets.id", ondelete="SET NULL")
    )
    file_created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    file_modified_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    duration: Mapped[Optional[str]] = mapped_column(String)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    exif: Mapped[Optional["ExifRow"]] = relationship(
        back_populates="asset", cascade="all, delete-orphan", uselist=False
    )
    albums: Mapped[list["AlbumRow"]] = relationship(
        secondary="album_assets", back_populates="assets"
    )


class ExifRow(Base):
    __tablename__ = "exif"

    asset_id: Mapped[str] = mapped_column(
        ForeignKey("assets.id", ondelete="CASCADE"), primary_key=True
    )
    file_size_in_byte: Mapped[Optional[int]] = mapped_column(BigInteger)
    make: Mapped[Optional[str]] = mapped_column(String)
    model: Mapped[Optional[str]] = mapped_column(String)
    lens_model: Mapped[Optional[str]] = mapped_column(String)
    exif_image_width: Mapped[Optional[int]] = mapped_column(Integer)
    exif_image_height: Mapped[Optional[int]] = mapped_column(Integer)
    orientation: Mapped[Optional[str]] = mapped_column(String)
    exposure_time: Mapped[Optional[float]] = mapped_column(Float)
    f_number: Mapped[Optional[float]] = mapped_column(Float)
    focal_length: Mapped[Optional[float]] = mapped_column(Float)
    iso: Mapped[Optional[int]] = mapped_column(Integer)
    latitude: Mapped[Optional[float]] = mapped_column(Float)
    longitude: Mapped[Optional[float]] = mapped_column(Float)
    time_zone: Mapped[Optional[str]] = mapped_column(String)
    city: Mapped[Optional[str]] = mapped_column(String)
    state: Mapped[Optional[str]] = mapped_column(String)
    country: Mapped[Optional[str]] = mapped_column(String)
    fps: Mapped[Optional[int]] = mapped_column(Integer)
    live_photo_cid: Mapped[Optional[str]] = mapped_column(String, index=True)
    date_time_original: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    modify_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    asset: Mapped[AssetRow] = relationship(back_populates="exif")


class AlbumRow(Base):
    __tablename__ = "albums"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    owner_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    album_name: Mapped[str] = mapped_column(String, nullable=False)
    album_thumbnail_asset_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("assets.id", ondelete="SET NULL")
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    assets: Mapped[list[AssetRow]] = relationship(
        secondary="album_assets", back_populates="albums"
    )


album_assets = Table(
    "album_assets",
    Base.metadata,
    # Association table; Column objects keep it portable across SQLite and Postgres.
    Column(
        "album_id",
        ForeignKey("albums.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column(
        "asset_id",
        ForeignKey("assets.id", ondelete="CASCADE"),
        primary_key=True,
    ),
)


def _enable_sqlite_foreign_keys(dbapi_connection: object, _: object) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_engine_from_url(database_url: str) -> Engine:
    url = make_url(database_url)
    kwargs: dict = {"future": True}
    if url.get_backend_name() == "sqlite":
        # Repository calls run on worker threads.
        kwargs["connect_args"] = {"check_same_thread": False}
        if url.database in (None, "", ":memory:"):
            kwargs["poolclass"] = StaticPool
    engine = create_engine(url, **kwargs)
    if engine.dialect.name == "sqlite":
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
    return engine


def init_db(database_url: str | Engine) -> Engine:
    engine = (
        database_url if isinstance(database_url, Engine) else create_engine_from_url(database_url)
    )
    Base.metadata.create_all(engine)
    return engine


def session_factory(engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=engine, expire_on_commit=False, class_=Session, future=True)
