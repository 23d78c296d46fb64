"""Structured engine events for an external email/push dispatcher."""
from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Awaitable, Callable, Optional

import httpx

import config

logger = logging.getLogger("hq.events")

EventListener = Callable[["HQEvent"], Awaitable[None]]

_listeners: list[EventListener] = []


@dataclass
class HQEvent:
    type: str
    actor_user_id: Optional[int]
    competition_id: Optional[int] = None
    team_id: Optional[int] = None
    user_id: Optional[int] = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_payload(self) -> dict:
        payload = {k: v for k, v in asdict(self).items() if v is not None and k != "extra"}
        payload.update(self.extra)
        return payload


def add_listener(listener: EventListener) -> None:
    _listeners.append(listener)


def remove_listener(listener: EventListener) -> None:
    if listener in _listeners:
        _listeners.remove(listener)


async def _post_webhook(event: HQEvent) -> None:
    """POST the event to the configured dispatcher. Best-effort; delivery never fails the action."""
    if not config.EVENT_WEBHOOK_URL:
        return
    headers = {}
    if config.EVENT_WEBHOOK_SECRET:
        headers["Authorization"] = f"Bearer {config.EVENT_WEBHOOK_SECRET}"
    try:
        async with httpx.AsyncClient(timeout=10.0) as client:
            r = await client.post(config.EVENT_WEBHOOK_URL, json=event.to_payload(), headers=headers)
            r.raise_for_status()
    except httpx.HTTPError as e:
        logger.warning("Event delivery failed for %s: %s", event.type, e)


async def dispatch_event(event: HQEvent) -> None:
    """Publish an event after the operation that produced it has committed.

    Listener and webhook failures are logged; the committed action stands.
    """
    logger.info("Event %s: %s", event.type, event.to_payload())
    for listener in list(_listeners):
        try:
            await listener(event)
        except Exception:
            logger.exception("Event listener failed for %s", event.type)
    await _post_webhook(event)
