#!/usr/bin/env python
"""
Register the media under a directory and run metadata enrichment until done.

Usage:
  python scripts/enrich.py /absolute/path/to/library --owner alice
  DISABLE_REVERSE_GEOCODING=1 python scripts/enrich.py ~/Pictures --owner alice --force
"""
from __future__ import annotations

import argparse
import asyncio
from pathlib import Path

from media_enrich.core.env import PipelineConfig, configure_logging, load_dotenv_if_present
from media_enrich.ingest import build_pipeline


async def run(directory: Path, owner: str, force: bool) -> int:
    pipeline = build_pipeline(PipelineConfig.from_env())
    await pipeline.start()
    try:
        return await pipeline.enrich_directory(directory, owner, force=force)
    finally:
        await pipeline.stop()
        pipeline.engine.dispose()


def main() -> None:
    parser = argparse.ArgumentParser(description="Extract and enrich metadata for a media directory.")
    parser.add_argument("directory", type=Path, help="Directory containing media (recursed)")
    parser.add_argument("--owner", required=True, help="Owner id assigned to new assets")
    parser.add_argument(
        "--force", action="store_true", help="Re-extract every asset, not only new ones"
    )
    args = parser.parse_args()

    load_dotenv_if_present()
    configure_logging()
    target = args.directory
    if not target.exists() or not target.is_dir():
        raise FileNotFoundError(f"Directory not found or not a folder: {target}")

    registered = asyncio.run(run(target, args.owner, args.force))
    if registered == 0:
        print(f"No new media found under {target}")
    else:
        print(f"Enrichment complete: {registered} new files registered from {target}")


if __name__ == "__main__":
    main()
