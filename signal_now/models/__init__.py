"""Database models"""

from signal_now.models.assessment import AssessmentHistory, AssessmentSnapshot
from signal_now.models.profile import UserProfile
from signal_now.models.watchlist import TargetType, WatchlistItem

__all__ = [
    "AssessmentHistory",
    "AssessmentSnapshot",
    "UserProfile",
    "TargetType",
    "WatchlistItem",
]
