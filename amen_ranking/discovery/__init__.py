"""AMEN Ranking — Discovery Package."""

from amen_ranking.discovery.blend import blend, discover_content

__all__ = [
    "blend",
    "discover_content",
]
