from __future__ import annotations

import logging
from typing import Optional

from media_enrich.core.interfaces import AssetRepository
from media_enrich.core.models import Asset, AssetType

logger = logging.getLogger(__name__)


class LivePhotoPairer:
    """Links a still and its motion clip once both carry the same content identifier.

    Both halves must already have their metadata record stored. The pair is
    always the lowest-id still with the lowest-id motion clip of that owner and
    identifier, so the outcome does not depend on job order. The still keeps
    the forward pointer and only the linked motion clip is hidden.
    """

    def __init__(self, assets: AssetRepository):
        self.assets = assets

    def pair(self, asset: Asset, live_photo_cid: Optional[str]) -> Optional[Asset]:
        """Pair ``asset`` with its counterpart; return the linked motion clip."""
        if not live_photo_cid:
            return None

        still = self._lowest(asset, live_photo_cid, AssetType.IMAGE)
        motion = self._lowest(asset, live_photo_cid, AssetType.VIDEO)
        if still is None or motion is None:
            return None
        if asset.id not in (still.id, motion.id):
            return None

        current = self.assets.get(still.id)
        previous_id = current.live_photo_video_id if current else None
        if previous_id == motion.id:
            return motion

        for linked in self.assets.find_linked_stills(motion.id):
            if linked.id != still.id:
                self.assets.save(linked.id, live_photo_video_id=None)
        self.assets.save(still.id, live_photo_video_id=motion.id)
        self.assets.save(motion.id, is_visible=False)
        if previous_id is not None:
            # A lower-id clip arrived later; the old one is no longer linked.
            self.assets.save(previous_id, is_visible=True)
        logger.info("Linked live photo %s with motion asset %s", still.id, motion.id)
        return motion

    def _lowest(self, asset: Asset, live_photo_cid: str, type: AssetType) -> Optional[Asset]:
        return self.assets.find_live_photo_match(
            live_photo_cid=live_photo_cid,
            owner_id=asset.owner_id,
            type=type,
        )
