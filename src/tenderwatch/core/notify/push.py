"""
Push notification fan-out through the Expo push gateway.

Delivers one message per registered device in chunks of at most 100,
the gateway's per-request limit. A failed chunk is logged and counted
as zero deliveries; it never stops the other chunks.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Sequence

import httpx

from tenderwatch.core.normalize import OrderCanonical

from .aggregator import format_amount, plural

if TYPE_CHECKING:
    from tenderwatch.persistence.repo import NotificationRepository, PushTokenRepository

logger = logging.getLogger(__name__)


DEFAULT_GATEWAY_URL = "https://exp.host/--/api/v2/push/send"
MAX_BATCH_SIZE = 100

NEW_ORDERS_PUSH = "new-orders-push"

_TOKEN_PATTERN = re.compile(r"^Expo(?:nent)?PushToken\[[^\]]+\]$")


def is_valid_token(token: str | None) -> bool:
    """True for tokens in the gateway's ``ExponentPushToken[...]`` format."""
    return bool(token) and bool(_TOKEN_PATTERN.match(token.strip()))


def chunked(items: Sequence[Any], size: int) -> list[list[Any]]:
    return [list(items[i:i + size]) for i in range(0, len(items), size)]


@dataclass
class PushResult:
    """Outcome of one fan-out."""

    sent: int = 0
    batches: int = 0
    failed_batches: int = 0


class PushFanoutService:
    """Sends new-order pushes to every registered device."""

    def __init__(
        self,
        tokens_repo: "PushTokenRepository",
        notifications_repo: "NotificationRepository",
        gateway_url: str = DEFAULT_GATEWAY_URL,
        batch_size: int = MAX_BATCH_SIZE,
        max_workers: int = 3,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize fan-out service.

        Args:
            tokens_repo: Source of device tokens
            notifications_repo: Where the summary notification is written
            gateway_url: Push gateway endpoint
            batch_size: Messages per request, capped at 100
            max_workers: Chunks in flight at once
            timeout: Per-request timeout in seconds
            transport: Custom httpx transport (tests)
        """
        self.tokens_repo = tokens_repo
        self.notifications_repo = notifications_repo
        self.gateway_url = gateway_url
        self.batch_size = max(1, min(batch_size, MAX_BATCH_SIZE))
        self.max_workers = max(1, max_workers)
        self.timeout = timeout
        self._transport = transport

    @staticmethod
    def build_message(token: str, title: str, body: str, data: dict[str, Any]) -> dict[str, Any]:
        return {
            "to": token,
            "sound": "default",
            "title": title,
            "body": body,
            "data": data,
            "priority": "high",
            "channelId": "default",
        }

    async def _send_chunk(
        self,
        client: httpx.AsyncClient,
        semaphore: asyncio.Semaphore,
        index: int,
        chunk: list[dict[str, Any]],
    ) -> int | None:
        """Post one chunk. Returns accepted count, or None on failure."""
        async with semaphore:
            try:
                response = await client.post(self.gateway_url, json=chunk)
                response.raise_for_status()
                tickets = response.json().get("data")
                if not isinstance(tickets, list):
                    raise ValueError("response has no 'data' list")
            except (httpx.HTTPError, ValueError, AttributeError) as e:
                logger.error("Push chunk %d (%d messages) failed: %s", index, len(chunk), e)
                return None

        accepted = 0
        for position, ticket in enumerate(tickets):
            if isinstance(ticket, dict) and ticket.get("status") == "ok":
                accepted += 1
            else:
                detail = ticket.get("message") if isinstance(ticket, dict) else ticket
                logger.debug("Push chunk %d entry %d rejected: %s", index, position, detail)

        logger.info("Push chunk %d: %d/%d accepted", index, accepted, len(chunk))
        return accepted

    async def send(self, title: str, body: str, data: dict[str, Any] | None = None) -> PushResult:
        """Send one message to every device with a valid token."""
        tokens = [t for t in self.tokens_repo.all_tokens() if is_valid_token(t)]
        if not tokens:
            logger.info("No valid push tokens registered")
            return PushResult()

        messages = [self.build_message(token, title, body, data or {}) for token in tokens]
        chunks = chunked(messages, self.batch_size)
        semaphore = asyncio.Semaphore(self.max_workers)

        async with httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout),
            headers={"Accept": "application/json", "Content-Type": "application/json"},
            transport=self._transport,
        ) as client:
            outcomes = await asyncio.gather(
                *(self._send_chunk(client, semaphore, i, chunk) for i, chunk in enumerate(chunks))
            )

        result = PushResult(batches=len(chunks))
        for outcome in outcomes:
            if outcome is None:
                result.failed_batches += 1
            else:
                result.sent += outcome

        logger.info(
            "Push fan-out: %d sent in %d batches (%d failed)",
            result.sent,
            result.batches,
            result.failed_batches,
        )
        return result

    async def notify_new_orders(self, orders: Sequence[OrderCanonical]) -> PushResult:
        """Push a summary of newly discovered orders to every device.

        Also writes one summary notification. Does nothing for an empty
        order list.
        """
        if not orders:
            return PushResult()

        count = len(orders)
        total = sum(order.amount for order in orders)
        title = f"{count} new purchase {plural(count, 'order')} detected"
        body = f"Total amount: {format_amount(total)}"

        result = await self.send(title, body, {"type": NEW_ORDERS_PUSH, "count": count, "amount": total})

        self.notifications_repo.create(
            type=NEW_ORDERS_PUSH,
            title=title,
            message=body,
            order_count=count,
        )
        return result
