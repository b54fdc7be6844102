"""
Email Notifier — Circle Message Alerts
========================================
Renders HTML e-mails for new circle messages and @mentions, and sends
them through the platform's e-mail integration (service role).

Delivery is best-effort: a failure for one recipient is logged and the
loop moves on to the next.
"""

from __future__ import annotations

import html
import logging
from typing import Any, Dict, List, Optional

import config

log = logging.getLogger("email_notifier")


# ═══════════════════════════════════════════════════════════════
#  HTML Templates
# ═══════════════════════════════════════════════════════════════

MENTION_TEMPLATE = """\
<h2>You were mentioned!</h2>
<p><strong>{sender_name}</strong> mentioned you in <strong>{circle_name}</strong>:</p>
<blockquote style="border-left: 3px solid #8F00FF; padding-left: 15px; margin: 20px 0;">
  {content}
</blockquote>
<p>Open the {app_name} app to reply!</p>
"""

MESSAGE_TEMPLATE = """\
<h2>New message from {sender_name}</h2>
<p>In <strong>{circle_name}</strong>:</p>
<blockquote style="border-left: 3px solid #00F2FF; padding-left: 15px; margin: 20px 0;">
  {content}
</blockquote>
<p>Open the {app_name} app to reply!</p>
"""

IMAGE_PLACEHOLDER = "📷 Sent an image"


def _message_content(message: Dict[str, Any], show_images: bool) -> str:
    if show_images and message.get("type") == "image":
        return IMAGE_PLACEHOLDER
    return html.escape(str(message.get("content") or ""))


def build_mention_email(sender: Dict[str, Any], circle: Dict[str, Any], message: Dict[str, Any]) -> Dict[str, str]:
    """Subject + HTML body for a recipient who was @mentioned."""
    sender_name = str(sender.get("full_name") or "Someone")
    circle_name = str(circle.get("name") or "your circle")
    body = MENTION_TEMPLATE.format(
        sender_name=html.escape(sender_name),
        circle_name=html.escape(circle_name),
        content=_message_content(message, show_images=False),
        app_name=config.APP_DISPLAY_NAME,
    )
    return {"subject": f"{sender_name} mentioned you in {circle_name}", "body": body}


def build_message_email(sender: Dict[str, Any], circle: Dict[str, Any], message: Dict[str, Any]) -> Dict[str, str]:
    """Subject + HTML body for a general new-message notification."""
    sender_name = str(sender.get("full_name") or "Someone")
    circle_name = str(circle.get("name") or "your circle")
    body = MESSAGE_TEMPLATE.format(
        sender_name=html.escape(sender_name),
        circle_name=html.escape(circle_name),
        content=_message_content(message, show_images=True),
        app_name=config.APP_DISPLAY_NAME,
    )
    return {"subject": f"New message in {circle_name}", "body": body}


# ═══════════════════════════════════════════════════════════════
#  Recipients + delivery
# ═══════════════════════════════════════════════════════════════

def circle_recipients(
    users: List[Dict[str, Any]],
    circle: Dict[str, Any],
    sender_id: Any,
    mentions: Optional[List[Any]] = None,
) -> List[Dict[str, Any]]:
    """Circle members other than the sender; only the mentioned ones if any."""
    members = circle.get("members") or []
    recipients = [u for u in users if u.get("id") in members and u.get("id") != sender_id]
    if mentions:
        recipients = [u for u in recipients if u.get("id") in mentions]
    return recipients


def notify_circle_members(
    service_client: Any,
    sender: Dict[str, Any],
    circle: Dict[str, Any],
    message: Dict[str, Any],
    mentions: Optional[List[Any]] = None,
) -> Dict[str, int]:
    """E-mail circle members about a new message.

    Returns
    -------
    dict
        ``{"sent": n, "failed": n}``; members without an e-mail are skipped.
    """
    users = service_client.entities.User.list("-created_date", 1000)
    recipients = circle_recipients(users, circle, sender.get("id"), mentions)

    if mentions:
        email = build_mention_email(sender, circle, message)
    else:
        email = build_message_email(sender, circle, message)

    sent = failed = 0
    for member in recipients:
        address = member.get("email")
        if not address:
            continue
        try:
            service_client.integrations.send_email(to=address, subject=email["subject"], body=email["body"])
            sent += 1
        except Exception as e:
            failed += 1
            log.error("Failed to send email to %s: %s", address, e)

    log.info("📧 Circle %s: %d notification(s) sent, %d failed", circle.get("id"), sent, failed)
    return {"sent": sent, "failed": failed}
