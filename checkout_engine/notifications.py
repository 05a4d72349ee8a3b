"""
Customer notification hand-off.

Sending email/SMS is owned by another service; the payment engine only
announces events such as "payment confirmed". Delivery failures are the
caller's to swallow: a notification must never undo a payment state change.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Optional

import httpx

logger = logging.getLogger("checkout_engine.notifications")


class Notifier(ABC):
    @abstractmethod
    async def send(self, event: str, order_number: str, context: dict[str, Any]) -> None:
        ...


class LogNotifier(Notifier):
    """Records notifications in the log only (default when no endpoint is set)."""

    async def send(self, event: str, order_number: str, context: dict[str, Any]) -> None:
        logger.info("NOTIFY | %s | order=%s | %s", event, order_number, context)


class HttpNotifier(Notifier):
    """POSTs notifications as JSON to the messaging service."""

    def __init__(self, url: str, timeout: float = 5.0, client: Optional[httpx.AsyncClient] = None):
        self._url = url
        self._timeout = timeout
        self._client = client

    async def send(self, event: str, order_number: str, context: dict[str, Any]) -> None:
        body = {"event": event, "order_number": order_number, "context": context}
        if self._client is not None:
            response = await self._client.post(self._url, json=body, timeout=self._timeout)
        else:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.post(self._url, json=body)
        response.raise_for_status()


def build_notifier(url: str) -> Notifier:
    return HttpNotifier(url) if url else LogNotifier()
