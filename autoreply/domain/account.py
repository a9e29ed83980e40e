"""
Account-side models the worker reads: business users and their connected channels.
"""

from datetime import datetime

from sqlalchemy import Column, String, DateTime, Integer, Boolean, Text, ForeignKey

from autoreply.domain.rule import Base


class User(Base):
    """SQLAlchemy model for a business account and its AI profile."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(255), nullable=False, unique=True)
    brand_name = Column(String(255), nullable=False)
    business_hours = Column(String(255), nullable=True)
    address = Column(String(500), nullable=True)
    description = Column(Text, nullable=True)
    ai_enabled = Column(Boolean, default=False)
    ai_tone = Column(String(20), default="friendly")
    banned_words = Column(Text, nullable=True)  # JSON array of strings
    reservation_slug = Column(String(100), nullable=True, unique=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    def __repr__(self) -> str:
        return f"<User(id={self.id}, brand_name={self.brand_name})>"


class Channel(Base):
    """SQLAlchemy model for a connected messaging channel."""

    __tablename__ = "channels"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    channel_type = Column(String(20), nullable=False)  # instagram, kakao, naver
    account_id = Column(String(100), nullable=True, index=True)
    account_name = Column(String(255), nullable=True)
    access_token = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    def __repr__(self) -> str:
        return f"<Channel(id={self.id}, type={self.channel_type}, active={self.is_active})>"
