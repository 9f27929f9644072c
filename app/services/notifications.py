from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Protocol

from httpx import AsyncClient, HTTPError, InvalidURL
from structlog import get_logger

from app.config import settings

logger = get_logger()


@dataclass(frozen=True)
class PropertyStatusEvent:
    property_id: int
    new_status: str
    owner_id: int


class Notifier(Protocol):
    async def publish(self, event: PropertyStatusEvent) -> None: ...


class NullNotifier:
    async def publish(self, event: PropertyStatusEvent) -> None:
        logger.info("Notification delivery disabled", **asdict(event))


class HttpNotifier:
    """Hands status events to the notification service for delivery to owners.

    Delivery happens after the transition is committed, so a failure here is
    logged and not raised.
    """

    def __init__(self, base_url: str, token: str, timeout: float = 10.0):
        base = base_url.rstrip("/")
        prefix = "" if base.endswith("/api/v1") else "/api/v1"
        self.url = f"{base}{prefix}/notifications"
        self.token = token
        self.timeout = timeout

    async def publish(self, event: PropertyStatusEvent) -> None:
        body = {
            "type": f"property_{event.new_status}",
            "user_id": event.owner_id,
            "property_id": event.property_id,
            "status": event.new_status,
        }
        try:
            async with AsyncClient(timeout=self.timeout) as client:
                resp = await client.post(self.url, json=body, headers={"Authorization": f"Bearer {self.token}"})
                resp.raise_for_status()
        except (HTTPError, InvalidURL) as e:
            logger.warning("Property notification failed", upstream=self.url, error=str(e), **asdict(event))
            return
        logger.info("Property notification sent", upstream=self.url, **asdict(event))


def get_notifier() -> Notifier:
    if not settings.NOTIFICATION_URL:
        return NullNotifier()
    return HttpNotifier(settings.NOTIFICATION_URL, settings.NOTIFICATION_TOKEN)
