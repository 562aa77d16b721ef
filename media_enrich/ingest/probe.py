"""Thin wrapper around ``ffprobe``."""

from __future__ import annotations

import json
import subprocess
from pathlib import Path
from typing import Any, Dict

from media_enrich.core.errors import ProbeError

_FFPROBE_LOG_LEVEL = "error"


def probe_media(source: str | Path) -> Dict[str, Any]:
    """Return ffprobe metadata for *source*.

    The structure mirrors ffprobe's ``show_format`` and ``show_streams`` JSON.
    ``ProbeError`` is raised when the tool is unavailable or fails.
    """

    command = [
        "ffprobe",
        "-hide_banner",
        "-loglevel",
        _FFPROBE_LOG_LEVEL,
        "-print_format",
        "json",
        "-show_format",
        "-show_streams",
        str(source),
    ]
    try:
        process = subprocess.run(
            command,
            check=False,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
        )
    except FileNotFoundError as exc:  # pragma: no cover - depends on environment
        raise ProbeError("ffprobe executable not found on PATH") from exc

    if process.returncode != 0 or not process.stdout:
        stderr = process.stderr.decode("utf-8", "ignore").strip()
        raise ProbeError(f"ffprobe failed to inspect {source}: {stderr or 'unknown error'}")
    try:
        data = json.loads(process.stdout.decode("utf-8"))
    except json.JSONDecodeError as exc:
        raise ProbeError("ffprobe returned invalid JSON output") from exc
    data.setdefault("format", {})
    data.setdefault("streams", [])
    return data
