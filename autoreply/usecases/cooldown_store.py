"""
Per (rule, sender) cooldown markers kept in the shared key-value store.
"""

import logging

from autoreply.infrastructure.kv_store import KeyValueStore

logger = logging.getLogger(__name__)


def cooldown_key(rule_id: int, sender_id: str) -> str:
    """Key of the cooldown marker for a rule and sender."""
    return f"cooldown:{rule_id}:{sender_id}"


class CooldownStore:
    """Expiry-based debounce so a rule answers a sender at most once per window."""

    def __init__(self, store: KeyValueStore):
        self.store = store

    async def is_suppressed(self, rule_id: int, sender_id: str) -> bool:
        """Return True while a cooldown marker exists for the rule and sender."""
        return await self.store.exists(cooldown_key(rule_id, sender_id))

    async def suppress(self, rule_id: int, sender_id: str, minutes: int) -> None:
        """
        Set a cooldown marker that expires after the given minutes.

        Args:
            rule_id: Rule that just answered
            sender_id: Sender it answered
            minutes: Cooldown length; zero or less writes no marker
        """
        if minutes <= 0:
            logger.debug(f"No cooldown for rule {rule_id} sender {sender_id} (0 minutes)")
            return

        await self.store.set(cooldown_key(rule_id, sender_id), "1", ttl_seconds=minutes * 60)
        logger.debug(f"Cooldown set for rule {rule_id} sender {sender_id} for {minutes} minutes")
