"""Outbound notifications emitted after a state change has been committed.

Services return :class:`Notification` records instead of sending anything
themselves; routers hand them to :func:`dispatch_notifications` through
FastAPI background tasks. Each send is independent: a failure is logged and
never reaches the request that produced it.
"""
import json
import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional
from urllib.request import Request as UrlRequest, urlopen

from email_templates import (
    build_password_reset_status_email,
    build_registration_email,
    build_team_finalized_email,
)
from emailer import send_email

logger = logging.getLogger(__name__)

REGISTRATION_CONFIRMED = "registration_confirmed"
TEAM_FINALIZED = "team_finalized"
EVENT_PUBLISHED = "event_published"
PASSWORD_RESET_REVIEWED = "password_reset_reviewed"

WEBHOOK_TIMEOUT_SECONDS = 8


@dataclass
class Notification:
    kind: str
    recipient_email: Optional[str]
    payload: dict = field(default_factory=dict)


class NotificationSender:
    def send(self, notification: Notification) -> None:
        raise NotImplementedError


class EmailNotificationSender(NotificationSender):
    def send(self, notification: Notification) -> None:
        payload = notification.payload
        if notification.kind == EVENT_PUBLISHED:
            self._post_webhook(payload)
            return
        if not notification.recipient_email:
            return

        if notification.kind == REGISTRATION_CONFIRMED:
            subject, html, text = build_registration_email(
                name=payload.get("name", ""),
                event_name=payload.get("event_name", ""),
                ticket_id=payload.get("ticket_id", ""),
                organizer_name=payload.get("organizer_name"),
                start_date=payload.get("start_date"),
                venue=payload.get("venue"),
                registration_fee=payload.get("registration_fee") or 0,
            )
        elif notification.kind == TEAM_FINALIZED:
            subject, html, text = build_team_finalized_email(
                name=payload.get("name", ""),
                team_name=payload.get("team_name", ""),
                leader_name=payload.get("leader_name", ""),
                event_name=payload.get("event_name", ""),
                member_names=payload.get("members") or [],
                ticket_id=payload.get("ticket_id", ""),
            )
        elif notification.kind == PASSWORD_RESET_REVIEWED:
            subject, html, text = build_password_reset_status_email(
                name=payload.get("name", ""),
                approved=bool(payload.get("approved")),
                new_password=payload.get("new_password"),
                reason=payload.get("reason"),
            )
        else:
            raise ValueError(f"Unknown notification kind: {notification.kind}")

        send_email(notification.recipient_email, subject, html, text)

    def _post_webhook(self, payload: dict) -> None:
        url = payload.get("webhook_url")
        if not url:
            return
        body = json.dumps({
            "embeds": [{
                "title": f"New Event: {payload.get('event_name', '')}",
                "description": (payload.get("description") or "")[:200],
                "color": 0x5865F2,
                "fields": [
                    {"name": "Type", "value": payload.get("event_type", ""), "inline": True},
                    {"name": "Fee", "value": f"Rs. {payload.get('registration_fee') or 0}", "inline": True},
                    {"name": "Deadline", "value": payload.get("registration_deadline") or "N/A", "inline": True},
                ],
                "footer": {"text": f"Organized by {payload.get('organizer_name', '')}"},
            }]
        }).encode("utf-8")
        request = UrlRequest(url, data=body, method="POST", headers={"Content-Type": "application/json"})
        with urlopen(request, timeout=WEBHOOK_TIMEOUT_SECONDS) as response:
            response.read()


def dispatch_notifications(notifications: Iterable[Notification], sender: NotificationSender) -> int:
    sent = 0
    for notification in notifications:
        try:
            sender.send(notification)
            sent += 1
        except Exception as exc:
            logger.warning(
                "Notification %s to %s failed: %s",
                notification.kind,
                notification.recipient_email or "webhook",
                exc,
            )
    return sent


_default_sender = EmailNotificationSender()


def get_notification_sender() -> NotificationSender:
    return _default_sender
