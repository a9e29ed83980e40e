"""
Read and write helpers for the tables the worker touches.
"""

import logging
from typing import List, Optional

from sqlalchemy import select, update, or_, func
from sqlalchemy.ext.asyncio import AsyncSession

from autoreply.domain.account import User, Channel
from autoreply.domain.message_log import MessageLog
from autoreply.domain.rule import AutoRule

logger = logging.getLogger(__name__)


async def get_user(session: AsyncSession, user_id: int) -> Optional[User]:
    """Look up a user by id."""
    return await session.get(User, user_id)


async def get_active_channel(session: AsyncSession, channel_id: int) -> Optional[Channel]:
    """Look up a channel by id, only if it is active."""
    result = await session.execute(
        select(Channel).where(Channel.id == channel_id, Channel.is_active.is_(True))
    )
    return result.scalar_one_or_none()


async def get_active_rules(session: AsyncSession, user_id: int, channel: str) -> List[AutoRule]:
    """
    Active rules of a user that may apply to a channel, highest precedence first.

    Args:
        session: Database session
        user_id: Owning user
        channel: Channel name (compared case-insensitively)

    Returns:
        Rules ordered by ascending priority, then id
    """
    result = await session.execute(
        select(AutoRule)
        .where(
            AutoRule.user_id == user_id,
            AutoRule.is_active.is_(True),
            or_(
                AutoRule.channel.is_(None),
                AutoRule.channel == "",
                func.upper(AutoRule.channel) == "ALL",
                func.upper(AutoRule.channel) == channel.upper(),
            ),
        )
        .order_by(AutoRule.priority, AutoRule.id)
    )
    return list(result.scalars().all())


async def increment_trigger_count(session: AsyncSession, rule_id: int) -> None:
    """Atomically bump a rule's trigger counter and stamp the trigger time."""
    await session.execute(
        update(AutoRule)
        .where(AutoRule.id == rule_id)
        .values(
            trigger_count=AutoRule.trigger_count + 1,
            last_triggered_at=func.now(),
        )
        .execution_options(synchronize_session=False)
    )
    await session.commit()


async def save_message_log(session: AsyncSession, entry: MessageLog) -> MessageLog:
    """Append an audit log entry."""
    session.add(entry)
    await session.commit()
    return entry
