"""Merging of embedded tags, sidecar tags and filesystem facts into one record."""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Mapping, Optional

from dateutil.parser import isoparse
from PIL import Image, UnidentifiedImageError

from media_enrich.core.models import Asset, ExifInfo

from .tags import ExifDateTime, parse_exif_datetime

logger = logging.getLogger(__name__)

ORIENTATION_TAG = 274

_VIDEO_LOCATION_RE = re.compile(r"([+-][0-9]+\.[0-9]+)([+-][0-9]+\.[0-9]+)/")
_ISO6709_LOCATION_RE = re.compile(r"([+-][0-9]+\.[0-9]+)([+-][0-9]+\.[0-9]+)([+-][0-9]+\.[0-9]+)/")
_EXIF_DATE_PREFIX_RE = re.compile(r"^(\d{4}):(\d{2}):(\d{2})[ T]")
_LEADING_NUMBER_RE = re.compile(r"^\s*([+-]?\d+(?:\.\d+)?)")


class TagSources:
    """Embedded and sidecar tags with sidecar-first lookup."""

    def __init__(
        self,
        embedded: Optional[Mapping[str, Any]] = None,
        sidecar: Optional[Mapping[str, Any]] = None,
    ):
        self.embedded = embedded or {}
        self.sidecar = sidecar or {}

    def get(self, *names: str) -> Any:
        """Return the first populated value; each alias tries sidecar before embedded."""
        for name in names:
            for source in (self.sidecar, self.embedded):
                value = source.get(name)
                if value is not None:
                    return value
        return None

    def get_parsed(self, parse: Callable[[Any], Any], *names: str) -> tuple[Any, Any]:
        """Like :meth:`get`, but skip values ``parse`` rejects; return ``(raw, parsed)``."""
        for name in names:
            for source in (self.sidecar, self.embedded):
                value = source.get(name)
                if value is None:
                    continue
                parsed = parse(value)
                if parsed is not None:
                    return value, parsed
        return None, None


def parse_date_string(text: str) -> Optional[datetime]:
    parsed = parse_exif_datetime(text)
    if isinstance(parsed, ExifDateTime):
        return parsed.value
    candidate = _EXIF_DATE_PREFIX_RE.sub(r"\1-\2-\3T", text.strip())
    try:
        value = isoparse(candidate)
    except ValueError:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def exif_to_date(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, ExifDateTime):
        return value.to_datetime()
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, str):
        return parse_date_string(value)
    return None


def exif_time_zone(value: Any) -> Optional[str]:
    if isinstance(value, ExifDateTime):
        return value.zone
    return None


def parse_iso(value: Any) -> Optional[int]:
    # Sidecar XMP files may report ISO as a list.
    if isinstance(value, (list, tuple)):
        value = value[0] if value else None
    if value is None or value == "":
        return None
    try:
        iso = int(float(value))
    except (TypeError, ValueError):
        return None
    return iso or None


def parse_focal_length(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    if isinstance(value, (int, float)):
        return float(value)
    match = _LEADING_NUMBER_RE.match(str(value))
    return float(match.group(1)) if match else None


def _to_float(value: Any) -> Optional[float]:
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str) and value.strip():
        try:
            return float(value)
        except ValueError:
            return None
    return None


def _to_int(value: Any) -> Optional[int]:
    number = _to_float(value)
    return int(number) if number is not None else None


def _to_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def parse_frame_rate(value: Any) -> Optional[int]:
    """Round an ffprobe ``num/den`` rate to whole frames per second."""
    if not isinstance(value, str):
        return None
    parts = value.split("/")
    if len(parts) != 2:
        return None
    try:
        numerator, denominator = int(parts[0]), int(parts[1])
    except ValueError:
        return None
    if denominator == 0:
        return None
    return int(math.floor(numerator / denominator + 0.5))


def extract_duration(duration: Any) -> Optional[str]:
    """Format seconds as ``hh:mm:ss.SSS``; missing or zero durations yield ``None``."""
    seconds = _to_float(duration)
    if not seconds or math.isnan(seconds):
        return None
    total_ms = int(round(seconds * 1000))
    hours, rest = divmod(total_ms, 3_600_000)
    minutes, rest = divmod(rest, 60_000)
    secs, millis = divmod(rest, 1000)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}.{millis:03d}"


def _duration_seconds(text: Optional[str]) -> Optional[float]:
    if not text:
        return None
    try:
        hours, minutes, seconds = text.split(":")
        return int(hours) * 3600 + int(minutes) * 60 + float(seconds)
    except ValueError:
        return None


def parse_video_location(format_tags: Mapping[str, Any]) -> tuple[Optional[float], Optional[float]]:
    """Return latitude/longitude from QuickTime location tags, or ``(None, None)``."""
    if format_tags.get("location"):
        match = _VIDEO_LOCATION_RE.fullmatch(str(format_tags["location"]))
    elif format_tags.get("com.apple.quicktime.location.ISO6709"):
        match = _ISO6709_LOCATION_RE.fullmatch(
            str(format_tags["com.apple.quicktime.location.ISO6709"])
        )
    else:
        return None, None
    if match is None:
        return None, None
    return float(match.group(1)), float(match.group(2))


def merge_image_metadata(
    asset: Asset,
    tags: TagSources,
    *,
    file_size: Optional[int],
) -> ExifInfo:
    """Build the metadata record of a still image from its tag sources."""
    # Unparsable dates (e.g. "0000:00:00 00:00:00") count as absent.
    created_value, date_time_original = tags.get_parsed(
        exif_to_date, "DateTimeOriginal", "CreateDate"
    )
    if date_time_original is None:
        date_time_original = asset.file_created_at
    _, modify_date = tags.get_parsed(exif_to_date, "ModifyDate")
    if modify_date is None:
        modify_date = asset.file_modified_at

    orientation = tags.get("Orientation")
    return ExifInfo(
        asset_id=asset.id,
        file_size_in_byte=file_size,
        make=_to_str(tags.get("Make")),
        model=_to_str(tags.get("Model")),
        lens_model=_to_str(tags.get("LensModel")),
        exif_image_width=_to_int(tags.get("ExifImageWidth", "ImageWidth")),
        exif_image_height=_to_int(tags.get("ExifImageHeight", "ImageHeight")),
        orientation=str(orientation) if orientation is not None else None,
        exposure_time=_to_float(tags.get("ExposureTime")),
        f_number=_to_float(tags.get("FNumber")),
        focal_length=parse_focal_length(tags.get("FocalLength")),
        iso=parse_iso(tags.get("ISO")),
        latitude=_to_float(tags.get("GPSLatitude")),
        longitude=_to_float(tags.get("GPSLongitude")),
        time_zone=exif_time_zone(created_value),
        live_photo_cid=_to_str(tags.get("MediaGroupUUID", "ContentIdentifier")),
        date_time_original=date_time_original,
        modify_date=modify_date,
    )


def read_image_header(path: str | Path) -> tuple[Optional[int], Optional[int], Optional[int]]:
    """Return width, height and EXIF orientation from the decoded image header."""
    with Image.open(path) as img:
        orientation = img.getexif().get(ORIENTATION_TAG)
        return (
            img.width or None,
            img.height or None,
            orientation if isinstance(orientation, int) else None,
        )


def fill_missing_dimensions(exif: ExifInfo, path: str | Path) -> ExifInfo:
    """Fill width, height and orientation from the file itself, only where still unset."""
    if exif.exif_image_width and exif.exif_image_height and exif.orientation:
        return exif
    try:
        width, height, orientation = read_image_header(path)
    except (UnidentifiedImageError, OSError) as exc:
        logger.warning("Unable to read image header for %s: %s", path, exc)
        return exif
    updates: dict[str, Any] = {}
    if exif.exif_image_width is None:
        updates["exif_image_width"] = width
    if exif.exif_image_height is None:
        updates["exif_image_height"] = height
    if exif.orientation is None and orientation is not None:
        updates["orientation"] = str(orientation)
    return exif.model_copy(update=updates)


@dataclass
class VideoMetadata:
    exif: ExifInfo
    file_created_at: datetime
    duration: Optional[str]


def merge_video_metadata(
    asset: Asset,
    probe: Mapping[str, Any],
    tags: TagSources,
    *,
    time_zone_lookup: Optional[Callable[[float, float], Optional[str]]] = None,
) -> VideoMetadata:
    """Build the metadata record of a video from ffprobe output and its tags."""
    fmt = probe.get("format") or {}
    format_tags = fmt.get("tags") or {}

    file_created_at = asset.file_created_at
    creation = format_tags.get("com.apple.quicktime.creationdate") or format_tags.get(
        "creation_time"
    )
    if creation:
        file_created_at = exif_to_date(str(creation)) or asset.file_created_at

    latitude, longitude = parse_video_location(format_tags)
    time_zone: Optional[str] = None
    if latitude is not None and longitude is not None and time_zone_lookup is not None:
        try:
            time_zone = time_zone_lookup(latitude, longitude)
        except Exception as exc:
            logger.warning(
                "Error while calculating timezone from gps coordinates for asset %s: %s",
                asset.id,
                exc,
            )

    width = height = fps = None
    orientation: Optional[str] = None
    for stream in probe.get("streams") or []:
        if stream.get("codec_type") != "video":
            continue
        width = _to_int(stream.get("width")) or None
        height = _to_int(stream.get("height")) or None
        rotation = stream.get("rotation")
        if rotation is None:
            rotation = (stream.get("tags") or {}).get("rotate")
        if rotation is None:
            for side_data in stream.get("side_data_list") or []:
                if "rotation" in side_data:
                    rotation = side_data["rotation"]
                    break
        orientation = str(rotation) if rotation is not None else None
        fps = parse_frame_rate(stream.get("r_frame_rate"))
        break

    exif = ExifInfo(
        asset_id=asset.id,
        file_size_in_byte=_to_int(fmt.get("size")),
        date_time_original=file_created_at,
        time_zone=time_zone,
        latitude=latitude,
        longitude=longitude,
        live_photo_cid=_to_str(tags.get("ContentIdentifier")),
        exif_image_width=width,
        exif_image_height=height,
        orientation=orientation,
        fps=fps,
    )
    return VideoMetadata(
        exif=exif,
        file_created_at=file_created_at,
        duration=extract_duration(fmt.get("duration") or _duration_seconds(asset.duration)),
    )
