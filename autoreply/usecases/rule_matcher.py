"""
Rule matching for incoming messages.

Evaluation is pure: it reads a snapshot of the user's rules and the current
time of day, and never touches storage.
"""

import logging
import re
from datetime import time
from typing import Iterable, Optional

from autoreply.domain.rule import AutoRule, MatchType
from autoreply.utils.time import get_current_time_of_day

logger = logging.getLogger(__name__)

ALL_CHANNELS = "ALL"


def split_keywords(keywords: Optional[str]) -> list[str]:
    """Split a comma separated keyword field into trimmed, lower-cased keywords."""
    if not keywords:
        return []
    return [k.strip().lower() for k in keywords.split(",") if k.strip()]


def _keyword_matches(match_type: str, message: str, keyword: str) -> bool:
    if match_type == MatchType.EXACT.value:
        return message == keyword
    if match_type == MatchType.REGEX.value:
        try:
            return re.search(keyword, message, re.IGNORECASE) is not None
        except re.error:
            logger.debug(f"Invalid regex keyword ignored: {keyword!r}")
            return False
    # CONTAINS and anything unrecognised
    return keyword in message


def rule_matches(rule: AutoRule, message: Optional[str]) -> bool:
    """
    Check whether a message matches any of the rule's keywords.

    Args:
        rule: Rule to evaluate
        message: Raw message text

    Returns:
        True if at least one keyword matches
    """
    if message is None:
        return False

    normalized = message.strip().lower()
    match_type = (rule.match_type or MatchType.CONTAINS.value).upper()

    return any(
        _keyword_matches(match_type, normalized, keyword)
        for keyword in split_keywords(rule.keywords)
    )


def is_within_active_hours(rule: AutoRule, now: Optional[time] = None) -> bool:
    """
    Check the rule's active-hours window.

    Both boundaries are exclusive. A window whose start is after its end
    wraps past midnight.
    """
    start, end = rule.active_hours_start, rule.active_hours_end
    if start is None or end is None:
        return True

    if now is None:
        now = get_current_time_of_day()

    if start > end:
        return now > start or now < end
    return start < now < end


def supports_channel(rule: AutoRule, target_channel: Optional[str]) -> bool:
    """Check whether the rule applies to the given channel."""
    if not rule.channel or rule.channel.upper() == ALL_CHANNELS:
        return True
    if target_channel is None:
        return False
    return rule.channel.lower() == target_channel.lower()


def find_matching_rule(
    rules: Iterable[AutoRule],
    message: str,
    channel: str,
    now: Optional[time] = None
) -> Optional[AutoRule]:
    """
    Return the first rule, in the given priority order, that is active now,
    applies to the channel and matches the message.

    Args:
        rules: The user's active rules ordered by priority
        message: Raw message text
        channel: Channel the message arrived on
        now: Time of day to evaluate active hours against (defaults to now)

    Returns:
        The matching rule, or None
    """
    if now is None:
        now = get_current_time_of_day()

    for rule in rules:
        if not is_within_active_hours(rule, now):
            logger.debug(f"Rule {rule.id} is not within active hours")
            continue

        if not supports_channel(rule, channel):
            logger.debug(f"Rule {rule.id} does not support channel {channel}")
            continue

        if rule_matches(rule, message):
            logger.info(f"Message matched rule: {rule.name} ({rule.id})")
            return rule

    logger.debug("No matching rule found")
    return None
