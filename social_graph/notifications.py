"""Outbound notification hook used after successful graph and share mutations."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Mapping, Protocol

logger = logging.getLogger(__name__)


class NotificationEvent(str, Enum):
    FRIEND_REQUEST = "friend_request"
    FRIEND_ACCEPTED = "friend_accepted"
    FOLLOW_REQUEST = "follow_request"
    NEW_FOLLOWER = "new_follower"
    VENUE_SHARE = "venue_share"


class Notifier(Protocol):
    def notify(self, recipient_id: str, event: NotificationEvent, payload: Mapping[str, Any]) -> None: ...


class NullNotifier:
    """Notifier that drops every event."""

    def notify(self, recipient_id: str, event: NotificationEvent, payload: Mapping[str, Any]) -> None:
        return None


def dispatch_notification(
    notifier: Notifier,
    recipient_id: str,
    event: NotificationEvent,
    payload: Mapping[str, Any],
) -> bool:
    """Send one notification after a committed mutation.

    Notifier failures are logged and reported as ``False``; they never propagate.
    """
    try:
        notifier.notify(recipient_id, event, dict(payload))
    except Exception:
        logger.exception("Failed to deliver %s notification to %s", event.value, recipient_id)
        return False
    return True


__all__ = ["NotificationEvent", "Notifier", "NullNotifier", "dispatch_notification"]
