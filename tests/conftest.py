from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

import pytest

from media_enrich.core.errors import ReverseGeocodeError, TagReadError
from media_enrich.core.models import Asset, AssetType, GeocodeResult
from media_enrich.index import (
    SqlAssetRepository,
    SqlExifRepository,
    init_db,
    session_factory,
)
from media_enrich.jobs import JobQueue

CREATED = datetime(2020, 5, 1, 8, 0, tzinfo=timezone.utc)
MODIFIED = datetime(2020, 5, 2, 9, 30, tzinfo=timezone.utc)


class StubGeocoding:
    def __init__(self, result: GeocodeResult | None = None, ready: bool = True):
        self.result = result or GeocodeResult(country="FR", state="Ile-de-France", city="Paris")
        self.ready = ready
        self.building = False
        self.calls: list[tuple[float, float]] = []
        self.init_calls = 0
        self.deleted = 0

    def init(self) -> None:
        self.init_calls += 1
        self.ready = True

    def delete_cache(self) -> None:
        self.deleted += 1
        self.ready = False

    def reverse_geocode(self, latitude: float, longitude: float) -> GeocodeResult:
        self.calls.append((latitude, longitude))
        if not self.ready or self.building:
            raise ReverseGeocodeError("Reverse geocoding index is not ready")
        return self.result


class StubTagReader:
    """Serves tags per file path; paths listed in ``failing`` raise TagReadError."""

    def __init__(self, tags: dict[str, dict] | None = None, failing: set[str] | None = None):
        self.tags = tags or {}
        self.failing = failing or set()
        self.calls: list[str] = []

    def __call__(self, path: str) -> dict:
        self.calls.append(str(path))
        if str(path) in self.failing:
            raise TagReadError(f"cannot read {path}")
        return dict(self.tags.get(str(path), {}))


@pytest.fixture
def sessions():
    engine = init_db("sqlite+pysqlite:///:memory:")
    yield session_factory(engine)
    engine.dispose()


@pytest.fixture
def asset_repo(sessions) -> SqlAssetRepository:
    return SqlAssetRepository(sessions)


@pytest.fixture
def exif_repo(sessions) -> SqlExifRepository:
    return SqlExifRepository(sessions)


@pytest.fixture
def job_queue() -> JobQueue:
    return JobQueue()


@pytest.fixture
def make_asset(tmp_path: Path, asset_repo: SqlAssetRepository):
    """Create a file on disk and register it as an asset."""

    def _make(
        asset_id: str,
        *,
        type: AssetType = AssetType.IMAGE,
        owner_id: str = "owner-1",
        suffix: str | None = None,
        contents: bytes = b"media",
        register: bool = True,
        **fields,
    ) -> Asset:
        suffix = suffix or (".mov" if type == AssetType.VIDEO else ".jpg")
        path = tmp_path / f"{asset_id}{suffix}"
        if not path.exists():
            path.write_bytes(contents)
        asset = Asset(
            id=asset_id,
            owner_id=owner_id,
            type=type,
            original_path=str(path),
            file_created_at=fields.pop("file_created_at", CREATED),
            file_modified_at=fields.pop("file_modified_at", MODIFIED),
            **fields,
        )
        if register:
            asset_repo.create_many([asset])
        return asset

    return _make


@pytest.fixture
def geocoding() -> StubGeocoding:
    return StubGeocoding()


@pytest.fixture
def tag_reader() -> StubTagReader:
    return StubTagReader()
