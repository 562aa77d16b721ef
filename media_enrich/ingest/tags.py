"""Tag reading through ExifTool.

Tags come back keyed by bare tag name (``Make``, ``DateTimeOriginal``...). Date
tags that carry an explicit UTC offset, either inline or via their companion
``OffsetTime*`` tag, are returned as :class:`ExifDateTime`; dates without an
offset stay plain strings.
"""

from __future__ import annotations

import logging
import re
import shutil
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Optional

from exiftool import ExifToolHelper
from exiftool.exceptions import ExifToolException

from media_enrich.core.errors import TagReadError

logger = logging.getLogger(__name__)

EXIFTOOL_ARGS = ["-n"]  # numeric values: decimal GPS, integer orientation

# Date tag -> tag holding its UTC offset.
DATE_OFFSET_TAGS = {
    "DateTimeOriginal": "OffsetTimeOriginal",
    "CreateDate": "OffsetTimeDigitized",
    "ModifyDate": "OffsetTime",
}

_EXIF_DATE_RE = re.compile(
    r"^(\d{4})[:-](\d{2})[:-](\d{2})[ T](\d{2}):(\d{2}):(\d{2})(\.\d+)?\s*(Z|[+-]\d{2}:?\d{2})?$"
)
_OFFSET_RE = re.compile(r"^([+-])(\d{2}):?(\d{2})$")


@dataclass(frozen=True)
class ExifDateTime:
    """A timestamp read together with an explicit zone."""

    value: datetime
    zone: str

    def to_datetime(self) -> datetime:
        return self.value


def _offset_minutes(text: str) -> Optional[int]:
    if text in {"Z", "z"}:
        return 0
    match = _OFFSET_RE.match(text.strip())
    if not match:
        return None
    sign, hours, minutes = match.groups()
    total = int(hours) * 60 + int(minutes)
    return -total if sign == "-" else total


def zone_name(offset_minutes: int) -> str:
    """Name a fixed offset the way ExifTool-based tooling does (``UTC``, ``UTC+2``, ``UTC-5:30``)."""
    if offset_minutes == 0:
        return "UTC"
    sign = "+" if offset_minutes > 0 else "-"
    hours, minutes = divmod(abs(offset_minutes), 60)
    return f"UTC{sign}{hours}" + (f":{minutes:02d}" if minutes else "")


def parse_exif_datetime(value: Any, offset: Any = None) -> Any:
    """Return an :class:`ExifDateTime` when ``value`` has a known offset, else ``value``."""
    if not isinstance(value, str):
        return value
    match = _EXIF_DATE_RE.match(value.strip())
    if not match:
        return value
    year, month, day, hour, minute, second, fraction, inline = match.groups()
    offset_text = inline or (offset.strip() if isinstance(offset, str) else None)
    minutes = _offset_minutes(offset_text) if offset_text else None
    if minutes is None:
        return value
    try:
        captured = datetime(
            int(year),
            int(month),
            int(day),
            int(hour),
            int(minute),
            int(second),
            int(float(fraction) * 1_000_000) if fraction else 0,
            tzinfo=timezone(timedelta(minutes=minutes)),
        )
    except ValueError:
        return value
    return ExifDateTime(value=captured, zone=zone_name(minutes))


def normalize_tags(raw: dict[str, Any]) -> dict[str, Any]:
    """Strip group prefixes and ``SourceFile``, then attach zones to date tags."""
    tags: dict[str, Any] = {}
    for key, value in raw.items():
        if not isinstance(key, str) or key == "SourceFile":
            continue
        name = key.rsplit(":", 1)[-1]
        tags.setdefault(name, value)
    for date_tag, offset_tag in DATE_OFFSET_TAGS.items():
        if date_tag in tags:
            tags[date_tag] = parse_exif_datetime(tags[date_tag], tags.get(offset_tag))
    return tags


def read_tags(path: str | Path) -> dict[str, Any]:
    """Read every tag ExifTool knows about ``path``."""
    if shutil.which("exiftool") is None:
        raise TagReadError(
            "exiftool executable not found. Install it from https://exiftool.org/ "
            "and ensure it is available on PATH."
        )
    target = str(path)
    try:
        with ExifToolHelper(common_args=EXIFTOOL_ARGS) as helper:
            payload = helper.get_metadata([target])
    except (ExifToolException, OSError, ValueError) as exc:
        raise TagReadError(f"ExifTool failed to read {target}: {exc}") from exc
    if not payload or not isinstance(payload[0], dict):
        raise TagReadError(f"ExifTool returned no metadata for {target}")
    return normalize_tags(payload[0])
