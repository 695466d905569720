"""AMEN Ranking — Content Discovery Blend.

Assembles the discovery feed from caller-supplied candidate pools in a
fixed section order: collaborative filtering, trending in the user's
interests, one serendipitous pick, rising creators.
"""

from __future__ import annotations

from typing import Callable, Hashable, Iterable, Optional, Sequence, TypeVar

from amen_ranking.config import DiscoveryConfig
from amen_ranking.models import DiscoveryPools, Post
from amen_ranking.utils.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


def _item_id(item: object) -> Hashable:
    return getattr(item, "id", item)


def blend(
    sections: Sequence[tuple[str, Iterable[T], int]],
    key: Optional[Callable[[T], Hashable]] = None,
) -> list[T]:
    """Take up to ``quota`` items from each section in order, without repeats.

    An item already picked by an earlier section is skipped and the quota
    is filled from further down the same pool.

    Args:
        sections: (name, pool, quota) triples in output order.
        key: Identity of an item; defaults to its ``id`` attribute.

    Returns:
        The concatenated, de-duplicated picks.
    """
    key = key or _item_id
    seen: set[Hashable] = set()
    out: list[T] = []

    for name, pool, quota in sections:
        taken = 0
        skipped = 0
        for item in pool:
            if taken >= quota:
                break
            ident = key(item)
            if ident in seen:
                skipped += 1
                continue
            seen.add(ident)
            out.append(item)
            taken += 1
        logger.debug("Discovery section %s: %d/%d picked (%d duplicates skipped)", name, taken, quota, skipped)

    return out


def discover_content(pools: DiscoveryPools, config: DiscoveryConfig) -> list[Post]:
    """Blend the discovery pools using the configured section sizes."""
    feed = blend([
        ("collaborative", pools.collaborative, config.collaborative),
        ("trending", pools.trending, config.trending),
        ("serendipity", pools.serendipity, min(1, config.serendipity)),
        ("rising_creators", pools.rising_creators, config.rising_creators),
    ])
    logger.debug("Discovery feed assembled: %d posts", len(feed))
    return feed
