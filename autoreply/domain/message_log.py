"""
Append-only audit log of processed messages.
"""

from datetime import datetime
from enum import Enum

from sqlalchemy import Column, String, DateTime, Integer, Text

from autoreply.domain.rule import Base


class ResponseType(str, Enum):
    """How (or whether) a message was answered."""
    RULE = "rule"
    AI = "ai"
    MANUAL = "manual"
    NONE = "none"


class MessageLog(Base):
    """SQLAlchemy model for one processed incoming message."""

    __tablename__ = "message_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, nullable=False, index=True)
    channel_id = Column(Integer, nullable=True)
    channel = Column(String(20), nullable=False)
    sender_id = Column(String(255), nullable=False)
    sender_name = Column(String(255), nullable=True)
    received_message = Column(Text, nullable=False)
    response_message = Column(Text, nullable=True)
    response_type = Column(String(20), nullable=False)
    matched_rule_id = Column(Integer, nullable=True)
    ai_tokens_used = Column(Integer, default=0)
    processing_time_ms = Column(Integer, nullable=True)
    error_message = Column(String(1000), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    def __repr__(self) -> str:
        return f"<MessageLog(id={self.id}, response_type={self.response_type})>"
