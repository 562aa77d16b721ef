"""Local reverse geocoding backed by the GeoNames table shipped with ``reverse_geocoder``."""

from __future__ import annotations

import csv
import io
import logging
import shutil
import threading
from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Optional

import reverse_geocoder  # type: ignore[import]
from timezonefinder import TimezoneFinder

from media_enrich.core.errors import ReverseGeocodeError
from media_enrich.core.models import GeocodeResult

logger = logging.getLogger(__name__)

CACHE_FILE_NAME = "cities.csv"
INDEX_COLUMNS = ["lat", "lon", "name", "admin1", "admin2", "cc"]


def default_source() -> Path:
    return Path(reverse_geocoder.__file__).resolve().parent / "rg_cities1000.csv"


class IndexState(str, Enum):
    ABSENT = "absent"
    BUILDING = "building"
    READY = "ready"


class LocalGeocodingRepository:
    """Reverse geocoding index persisted as a CSV in ``cache_dir``.

    The index is shared read-mostly by every worker. ``init`` and
    ``delete_cache`` are the only writers and are expected to run while the
    metadata extraction queue is paused.
    """

    def __init__(self, cache_dir: str | Path, source: Optional[str | Path] = None):
        self.cache_dir = Path(cache_dir)
        self.source = Path(source) if source else None
        self._lock = threading.Lock()
        self._state = IndexState.ABSENT
        self._geocoder: Optional[reverse_geocoder.RGeocoder] = None

    @property
    def cache_path(self) -> Path:
        return self.cache_dir / CACHE_FILE_NAME

    @property
    def state(self) -> IndexState:
        return self._state

    def _ensure_cache(self) -> Path:
        if self.cache_path.exists():
            return self.cache_path
        source = self.source or default_source()
        with source.open("r", encoding="utf-8", newline="") as infile:
            header = next(csv.reader(infile), None)
        if header != INDEX_COLUMNS:
            raise ReverseGeocodeError(
                f"Geocoding source {source} must have columns {','.join(INDEX_COLUMNS)}"
            )
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        partial = self.cache_path.with_suffix(".partial")
        shutil.copyfile(source, partial)
        partial.replace(self.cache_path)
        logger.info("Reverse geocoding cache written to %s", self.cache_path)
        return self.cache_path

    def init(self) -> None:
        with self._lock:
            if self._state == IndexState.READY:
                return
            self._state = IndexState.BUILDING
        try:
            cache = self._ensure_cache()
            text = cache.read_text(encoding="utf-8")
            geocoder = reverse_geocoder.RGeocoder(mode=1, verbose=False, stream=io.StringIO(text))
        except Exception:
            with self._lock:
                self._state = IndexState.ABSENT
            raise
        with self._lock:
            self._geocoder = geocoder
            self._state = IndexState.READY

    def delete_cache(self) -> None:
        with self._lock:
            self._geocoder = None
            self._state = IndexState.ABSENT
        self.cache_path.unlink(missing_ok=True)
        logger.info("Reverse geocoding cache deleted")

    def reverse_geocode(self, latitude: float, longitude: float) -> GeocodeResult:
        with self._lock:
            geocoder = self._geocoder if self._state == IndexState.READY else None
        if geocoder is None:
            raise ReverseGeocodeError("Reverse geocoding index is not ready")
        try:
            results = geocoder.query([(latitude, longitude)])
        except Exception as exc:
            raise ReverseGeocodeError(f"Reverse geocoding failed: {exc}") from exc
        if not results:
            raise ReverseGeocodeError("Reverse geocoding returned no match")
        record = results[0]
        return GeocodeResult(
            country=(record.get("cc") or "").strip() or None,
            state=(record.get("admin1") or "").strip() or None,
            city=(record.get("name") or "").strip() or None,
        )


@lru_cache(maxsize=1)
def _timezone_finder() -> TimezoneFinder:
    return TimezoneFinder()


def timezone_at(latitude: float, longitude: float) -> Optional[str]:
    """Return the IANA zone name covering the coordinates."""
    return _timezone_finder().timezone_at(lng=longitude, lat=latitude)
