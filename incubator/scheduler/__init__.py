"""
Periodic refresh tasks owned by display consumers.
"""

from .polling import (
    PeriodicRefresher,
    RefreshState,
    balance_refresher,
    leaderboard_refresher,
)

__all__ = [
    "PeriodicRefresher",
    "RefreshState",
    "balance_refresher",
    "leaderboard_refresher",
]
