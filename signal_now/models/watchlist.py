"""Watchlist model."""

from datetime import datetime
import enum

from sqlalchemy import Boolean, Column, DateTime, Index, Integer, String, UniqueConstraint

from signal_now.config.database import Base


class TargetType(str, enum.Enum):
    USERNAME = "username"
    REPO = "repo"
    ORG = "org"


class WatchlistItem(Base):
    """A tracked person, repository or organization, mapped to `user_watchlist`."""

    __tablename__ = "user_watchlist"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), nullable=False)
    target_type = Column(String(20), nullable=False)
    target_value = Column(String(200), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("user_id", "target_type", "target_value", name="uq_user_watchlist_target"),
        Index("idx_user_watchlist_user_active", "user_id", "is_active"),
    )

    def __repr__(self):
        return f"<WatchlistItem {self.target_type}:{self.target_value}>"
