from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv


def load_dotenv_if_present(path: str | Path = ".env") -> None:
    """Load environment variables from a .env file if it exists."""
    dotenv_path = Path(path)
    if dotenv_path.exists():
        load_dotenv(dotenv_path=dotenv_path, override=False)


def configure_logging(default_level: str = "INFO") -> None:
    """Configure root logging level from LOG_LEVEL env (default INFO)."""
    level_name = os.getenv("LOG_LEVEL", default_level).upper()
    level = getattr(logging, level_name, logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def _env_flag(name: str, default: str = "0") -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


@dataclass
class PipelineConfig:
    database_url: str
    reverse_geocoding_enabled: bool
    geocoding_cache_dir: Path
    geocoding_source: Optional[Path]
    page_size: int
    metadata_concurrency: int
    video_metadata_concurrency: int
    sidecar_concurrency: int

    @classmethod
    def from_env(cls) -> "PipelineConfig":
        source = os.getenv("REVERSE_GEOCODING_SOURCE")
        return cls(
            database_url=os.getenv("DATABASE_URL", "sqlite+pysqlite:///./media_enrich.db"),
            reverse_geocoding_enabled=not _env_flag("DISABLE_REVERSE_GEOCODING"),
            geocoding_cache_dir=Path(
                os.getenv("REVERSE_GEOCODING_CACHE_DIR", "./.reverse-geocoding")
            ),
            geocoding_source=Path(source) if source else None,
            page_size=int(os.getenv("JOBS_ASSET_PAGINATION_SIZE", "500")),
            metadata_concurrency=int(os.getenv("METADATA_CONCURRENCY", "4")),
            video_metadata_concurrency=int(os.getenv("VIDEO_METADATA_CONCURRENCY", "2")),
            sidecar_concurrency=int(os.getenv("SIDECAR_CONCURRENCY", "5")),
        )
