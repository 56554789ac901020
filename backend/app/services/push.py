"""Push-notification collaborator used when a recipient has no live connection."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol

import httpx
from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from app.config import Settings, get_settings
from app.core.errors import UnavailableError
from app.database import get_db_session
from app.models import PushSubscription, User

logger = logging.getLogger(__name__)

_EXPIRED_STATUSES = frozenset({404, 410})


class PushResult(str, Enum):
    DELIVERED = "delivered"
    SKIPPED = "skipped"


@dataclass(frozen=True, slots=True)
class PushNotification:
    """Rendered notification handed to the push transport."""

    title: str
    body: str
    icon_ref: str
    target_url: str
    tag: str

    def to_payload(self) -> dict[str, str]:
        return {
            "title": self.title,
            "body": self.body,
            "icon": self.icon_ref,
            "url": self.target_url,
            "tag": self.tag,
        }


class PushDispatcher(Protocol):
    async def dispatch(self, user_id: int, notification: PushNotification) -> PushResult:
        """Deliver ``notification`` to every endpoint registered by ``user_id``."""


def build_message_notification(sender: User, settings: Settings | None = None) -> PushNotification:
    """Notification announcing a new message from ``sender``."""

    settings = settings or get_settings()
    return PushNotification(
        title="New message",
        body=f"{sender.display_name} sent you a message",
        icon_ref=settings.push_icon,
        target_url=f"{settings.push_target_base_url.rstrip('/')}/{sender.id}",
        tag=settings.push_tag,
    )


def upsert_subscription(
    user_id: int, endpoint: str, p256dh: str, auth: str, db: Session
) -> PushSubscription:
    """Register ``endpoint`` for ``user_id``, taking it over from any previous owner."""

    stmt = select(PushSubscription).where(PushSubscription.endpoint == endpoint)
    subscription = db.execute(stmt).scalar_one_or_none()
    if subscription is None:
        subscription = PushSubscription(user_id=user_id, endpoint=endpoint, p256dh=p256dh, auth=auth)
        db.add(subscription)
    else:
        subscription.user_id = user_id
        subscription.p256dh = p256dh
        subscription.auth = auth
    db.commit()
    db.refresh(subscription)
    return subscription


@dataclass(frozen=True, slots=True)
class _Endpoint:
    id: int
    endpoint: str
    p256dh: str
    auth: str


class PushGatewayDispatcher:
    """Forwards notifications to a Web Push gateway over HTTP.

    The gateway signs each request with the VAPID keys and relays it to the
    browser vendor. Endpoints the gateway reports as gone (404/410) are
    deleted. Transport failures raise :class:`UnavailableError`.
    """

    def __init__(
        self,
        *,
        gateway_url: str | None,
        enabled: bool = True,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._gateway_url = gateway_url
        self._enabled = enabled
        self._timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: Settings) -> "PushGatewayDispatcher":
        return cls(
            gateway_url=str(settings.push_gateway_url) if settings.push_gateway_url else None,
            enabled=settings.push_notifications_enabled,
            timeout=settings.push_gateway_timeout_seconds,
        )

    async def dispatch(self, user_id: int, notification: PushNotification) -> PushResult:
        if not self._enabled or not self._gateway_url:
            return PushResult.SKIPPED

        endpoints = self._load_endpoints(user_id)
        if not endpoints:
            return PushResult.SKIPPED

        payload = notification.to_payload()
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            responses = await asyncio.gather(
                *(self._post(client, endpoint, payload) for endpoint in endpoints),
                return_exceptions=True,
            )

        delivered = 0
        expired: list[int] = []
        failures: list[str] = []
        for endpoint, response in zip(endpoints, responses):
            if isinstance(response, httpx.HTTPError):
                failures.append(f"{type(response).__name__}: {response}")
            elif isinstance(response, BaseException):
                raise response
            elif response.status_code in _EXPIRED_STATUSES:
                expired.append(endpoint.id)
            elif response.is_error:
                failures.append(f"gateway answered {response.status_code}")
            else:
                delivered += 1

        if expired:
            self._delete_endpoints(expired)
            logger.info("Removed %d expired push subscriptions of user %s", len(expired), user_id)

        if delivered:
            return PushResult.DELIVERED
        if failures:
            raise UnavailableError(f"Push delivery failed: {failures[0]}")
        return PushResult.SKIPPED

    async def _post(
        self, client: httpx.AsyncClient, endpoint: _Endpoint, payload: dict[str, Any]
    ) -> httpx.Response:
        body = {
            "subscription": {
                "endpoint": endpoint.endpoint,
                "keys": {"p256dh": endpoint.p256dh, "auth": endpoint.auth},
            },
            "payload": payload,
        }
        return await client.post(self._gateway_url, json=body)

    def _load_endpoints(self, user_id: int) -> list[_Endpoint]:
        with get_db_session() as db:
            stmt = select(PushSubscription).where(PushSubscription.user_id == user_id)
            return [
                _Endpoint(id=row.id, endpoint=row.endpoint, p256dh=row.p256dh, auth=row.auth)
                for row in db.execute(stmt).scalars()
            ]

    def _delete_endpoints(self, ids: list[int]) -> None:
        with get_db_session() as db:
            db.execute(delete(PushSubscription).where(PushSubscription.id.in_(ids)))
            db.commit()


__all__ = [
    "PushDispatcher",
    "PushGatewayDispatcher",
    "PushNotification",
    "PushResult",
    "build_message_notification",
    "upsert_subscription",
]
