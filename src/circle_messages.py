"""Circle message helpers: goal achievement posts and burn-message expiry."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from constants import BURN_MESSAGE_TTL_HOURS
from record_utils import as_utc, parse_timestamp

log = logging.getLogger("circle_messages")


def _format_value(value: Any) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def achievement_message(user: Dict[str, Any], goal: Dict[str, Any], value: Any) -> Dict[str, Any]:
    """CircleMessage payload announcing a completed goal."""
    name = user.get("full_name") or "A member"
    unit = goal.get("metric_unit") or ""
    content = (
        f"🏆 **Goal Achieved!**\n\n"
        f"{name} just completed: **{goal.get('title')}**\n\n"
        f"🎯 Final: {_format_value(value)} {unit}".rstrip()
        + "\n\nCongratulations! 🎉"
    )
    return {
        "circle_id": goal.get("circle_id"),
        "sender_id": user.get("id"),
        "sender_name": user.get("full_name"),
        "content": content,
        "type": "text",
    }


def expired_burn_messages(messages: List[Dict[str, Any]], now: Optional[datetime] = None) -> List[Dict[str, Any]]:
    """Burn messages past their TTL that were neither saved nor pinned."""
    cutoff = as_utc(now) - timedelta(hours=BURN_MESSAGE_TTL_HOURS)
    out = []
    for msg in messages or []:
        if msg.get("type") != "burn" or msg.get("saved") or msg.get("pinned"):
            continue
        created = parse_timestamp(msg.get("created_date"))
        if created is not None and created < cutoff:
            out.append(msg)
    return out


def cleanup_burn_messages(service_client: Any, now: Optional[datetime] = None) -> int:
    """Delete expired burn messages among the newest 1000; returns the count."""
    messages = service_client.entities.CircleMessage.list("-created_date", 1000)
    expired = expired_burn_messages(messages, now)
    for msg in expired:
        service_client.entities.CircleMessage.delete(msg["id"])
    log.info("Deleted %d burn message(s) older than %dh", len(expired), BURN_MESSAGE_TTL_HOURS)
    return len(expired)
