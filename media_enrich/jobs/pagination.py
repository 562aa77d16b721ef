from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Callable, Iterator

from media_enrich.core.errors import DispatchError
from media_enrich.core.models import Asset, Page, Pagination

from .types import Job

if TYPE_CHECKING:
    from media_enrich.core.interfaces import JobRepository

logger = logging.getLogger(__name__)

JOBS_ASSET_PAGINATION_SIZE = 500


def paginate(
    page_size: int, fetch: Callable[[Pagination], Page]
) -> Iterator[list[Asset]]:
    """Yield pages lazily, following the keyset cursor until the source is exhausted."""
    cursor: str | None = None
    while True:
        page = fetch(Pagination(take=page_size, cursor=cursor))
        if page.items:
            yield page.items
        if not page.has_next_page or page.next_cursor is None:
            return
        cursor = page.next_cursor


async def dispatch_pages(
    jobs: JobRepository,
    pages: Iterator[list[Asset]],
    job_for: Callable[[Asset], Job],
) -> int:
    """Queue one job per asset, page by page.

    A failing emission is logged and skipped; a failing page fetch aborts the
    scan with :class:`DispatchError`.
    """
    emitted = 0
    try:
        while True:
            # Page fetches hit the database; keep them off the event loop.
            assets = await asyncio.to_thread(next, pages, None)
            if assets is None:
                break
            for asset in assets:
                job = job_for(asset)
                try:
                    await jobs.queue(job)
                except Exception:
                    logger.exception("Unable to queue %s for asset %s", job.name.value, asset.id)
                    continue
                emitted += 1
    except Exception as exc:
        raise DispatchError(f"Asset enumeration failed after {emitted} jobs") from exc
    return emitted
