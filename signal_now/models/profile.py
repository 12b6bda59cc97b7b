"""Requester profile captured at onboarding."""

from datetime import datetime

from sqlalchemy import Column, DateTime, String, Text

from signal_now.config.database import Base


class UserProfile(Base):
    """Source identity and goal for a requesting user, mapped to `profiles`."""

    __tablename__ = "profiles"

    id = Column(String(64), primary_key=True)
    github_username = Column(String(100), nullable=True)
    goal = Column(Text, nullable=False, default="")
    repositories = Column(Text, nullable=False, default="")
    organizations = Column(Text, nullable=False, default="")
    people = Column(Text, nullable=False, default="")

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<UserProfile {self.id} ({self.github_username})>"
