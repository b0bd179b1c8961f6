"""
Pydantic models returned by the read services.
"""

from .snapshots import BalanceSnapshot, DepositorEntry, LeaderboardSnapshot, Snapshot

__all__ = [
    "Snapshot",
    "BalanceSnapshot",
    "DepositorEntry",
    "LeaderboardSnapshot",
]
