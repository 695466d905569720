"""AMEN Ranking — Moderation Package.

Rule-based risk scoring that decides whether user content is published,
held for review, or rejected.
"""

from amen_ranking.moderation.moderator import ContentModerator

__all__ = [
    "ContentModerator",
]
