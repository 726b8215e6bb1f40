"""Notification intents and best-effort delivery."""

from __future__ import annotations

import logging
from typing import Iterable, Optional, Tuple

import requests

from .config import (
    NOTIFICATION_TIMEOUT_SECONDS,
    NOTIFICATION_WEBHOOK_TOKEN,
    NOTIFICATION_WEBHOOK_URL,
    NOTIFICATIONS_ENABLED,
)
from .errors import ClaimError
from .models import NotificationIntent, Territory
from .ports import NotificationPort

LOGGER = logging.getLogger(__name__)

DEFENDER_TITLE = "Activity on your territories"

_DENIAL_BODIES = {
    "PaceInsufficient": "{attacker} tried to steal one of your territories but was not fast enough.",
    "TerritoryProtected": "{attacker} attacked your territory, but it is still protected.",
    "CooldownActive": "{attacker} must wait before attacking your territory again.",
    "ShieldActive": "{attacker} attacked your territory, but your shield held.",
}

Delivery = Tuple[str, NotificationIntent]


def _territory_intent(territory: Territory, body: str) -> NotificationIntent:
    return NotificationIntent(
        title=DEFENDER_TITLE,
        body=body,
        tag=territory.id,
        url=f"/territories/{territory.id}",
    )


def denial_intent(
    territory: Territory, error: ClaimError, attacker_name: str
) -> Optional[NotificationIntent]:
    """Intent telling a defender that an attack on their territory failed."""

    template = _DENIAL_BODIES.get(error.code)
    if template is None:
        return None
    return _territory_intent(territory, template.format(attacker=attacker_name))


def territory_lost_intent(territory: Territory, attacker_name: str) -> NotificationIntent:
    return _territory_intent(territory, f"{attacker_name} conquered one of your territories.")


def territory_split_intent(territory: Territory, attacker_name: str) -> NotificationIntent:
    return _territory_intent(
        territory, f"{attacker_name} carved a new territory out of one of yours."
    )


def dispatch_notifications(
    notifier: NotificationPort | None,
    deliveries: Iterable[Delivery],
    logger: logging.Logger | None = None,
) -> int:
    """Send every intent, logging failures. Returns the number delivered."""

    log = logger or LOGGER
    if notifier is None:
        return 0
    sent = 0
    for user_id, intent in deliveries:
        if not user_id:
            continue
        try:
            notifier.notify(user_id, intent)
        except Exception as exc:
            log.warning(
                "Notification to user=%s failed: %s", user_id, exc, exc_info=True
            )
            continue
        sent += 1
    return sent


class LoggingNotifier:
    """Notifier that only writes intents to the log."""

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._log = logger or logging.getLogger(self.__class__.__name__)

    def notify(self, user_id: str, intent: NotificationIntent) -> None:
        self._log.info("Notify user=%s tag=%s: %s", user_id, intent.tag, intent.body)


class WebhookNotifier:
    """Post intents as JSON to a push gateway."""

    def __init__(
        self,
        url: str = NOTIFICATION_WEBHOOK_URL,
        *,
        token: str = NOTIFICATION_WEBHOOK_TOKEN,
        timeout: float = NOTIFICATION_TIMEOUT_SECONDS,
        session: requests.Session | None = None,
    ) -> None:
        if not url:
            raise ValueError("A webhook URL is required")
        self.url = url
        self.timeout = timeout
        self._session = session or requests.Session()
        if token:
            self._session.headers["Authorization"] = f"Bearer {token}"

    def notify(self, user_id: str, intent: NotificationIntent) -> None:
        response = self._session.post(
            self.url,
            json={"user_id": user_id, "notification": intent.to_dict()},
            timeout=self.timeout,
        )
        response.raise_for_status()


def default_notifier() -> NotificationPort | None:
    if not NOTIFICATIONS_ENABLED:
        return None
    if NOTIFICATION_WEBHOOK_URL:
        return WebhookNotifier()
    return LoggingNotifier()
