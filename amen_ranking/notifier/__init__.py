"""AMEN Ranking — Notifier Package.

Delivery decisions for notification events:
  - gate: category tiers, frequency limits and do-not-disturb handling
"""

from amen_ranking.notifier.gate import NotificationGate

__all__ = [
    "NotificationGate",
]
