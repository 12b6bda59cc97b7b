"""Assessment snapshot and history models."""

from datetime import datetime

from sqlalchemy import JSON, BigInteger, Column, DateTime, Index, Integer, String, Text, UniqueConstraint

from signal_now.config.database import Base


class AssessmentSnapshot(Base):
    """Last-known assessment per (user, target), mapped to `assessment_snapshots`."""

    __tablename__ = "assessment_snapshots"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), nullable=False, index=True)
    target_handle = Column(String(200), nullable=False)

    activity_fingerprint = Column(String(64), nullable=False)
    readiness_score = Column(Integer, nullable=False, default=0)
    readiness_level = Column(String(10), nullable=False, default="low")
    decision = Column(String(20), nullable=False)
    bridge = Column(Text, nullable=True)
    reasoning = Column(Text, nullable=True)
    focus_areas = Column(JSON, nullable=False, default=list)
    icebreaker_text = Column(Text, nullable=True)
    next_step_text = Column(Text, nullable=True)
    last_checked_at = Column(DateTime(timezone=True), nullable=False)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("user_id", "target_handle", name="uq_assessment_snapshots_user_target"),
    )

    def __repr__(self):
        return f"<AssessmentSnapshot {self.user_id}:{self.target_handle} {self.decision}>"


class AssessmentHistory(Base):
    """Append-only log of completed assessment runs."""

    __tablename__ = "assessment_history"

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    user_id = Column(String(64), nullable=False)
    target_handle = Column(String(200), nullable=False)
    readiness_score = Column(Integer, nullable=False)
    decision = Column(String(20), nullable=False)
    reasoning = Column(Text, nullable=True)
    bridge = Column(Text, nullable=True)
    trace = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("idx_assessment_history_user_target", "user_id", "target_handle", "created_at"),
    )

    def __repr__(self):
        return f"<AssessmentHistory {self.user_id}:{self.target_handle} {self.decision}>"
