"""
Auto-reply rule domain model.
"""

from datetime import datetime
from enum import Enum

from sqlalchemy import Column, String, DateTime, Integer, Boolean, Text, Time, ForeignKey
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class MatchType(str, Enum):
    """How a rule's keywords are compared with the message."""
    EXACT = "EXACT"
    CONTAINS = "CONTAINS"
    REGEX = "REGEX"


class AutoRule(Base):
    """SQLAlchemy model for keyword auto-reply rules."""

    __tablename__ = "auto_rules"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    match_type = Column(String(20), nullable=False, default=MatchType.CONTAINS.value)
    keywords = Column(Text, nullable=False)  # comma separated
    response_template = Column(Text, nullable=False)
    include_reservation_link = Column(Boolean, default=False)
    include_estimate_link = Column(Boolean, default=False)
    priority = Column(Integer, default=100)  # lower runs first
    channel = Column(String(20), nullable=True)  # instagram/kakao/naver, or ALL
    cooldown_seconds = Column(Integer, default=60)
    active_hours_start = Column(Time, nullable=True)
    active_hours_end = Column(Time, nullable=True)
    is_active = Column(Boolean, default=True)
    trigger_count = Column(Integer, default=0, nullable=False)
    last_triggered_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self) -> str:
        return f"<AutoRule(id={self.id}, name={self.name}, match_type={self.match_type})>"
