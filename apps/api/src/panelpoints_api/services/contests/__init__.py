"""Contest lifecycle, leaderboard and prize services."""

from .contest_service import ContestService  # noqa: F401
from .leaderboard import LeaderboardEntry, LeaderboardService, LeaderboardView  # noqa: F401
from .prizes import ContestPrizeService, PrizeAwardResult  # noqa: F401
