"""
Request pacing for the procurement API.

The public API enforces a low daily quota and rejects bursts, so calls
are serialized and spaced by a minimum gap that depends on the call site.
"""

from __future__ import annotations

import asyncio
import time
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, AsyncIterator, Awaitable, Callable

if TYPE_CHECKING:
    from tenderwatch.core.config import ScanConfig


# Call sites
LIST = "list"
DETAIL = "detail"
LOOKUP = "lookup"
REFRESH = "refresh"

DEFAULT_GAPS = {
    LIST: 1.0,
    DETAIL: 0.5,
    LOOKUP: 0.3,
    REFRESH: 0.5,
}


class RequestPacer:
    """Serializes API calls and enforces a minimum gap before each one.

    Features:
    - One call in flight at a time (asyncio.Lock)
    - Per-call-site minimum gap since the previous call finished
    - Injectable sleep and clock for tests
    """

    def __init__(
        self,
        gaps: dict[str, float] | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize pacer.

        Args:
            gaps: Minimum gap in seconds per call site
            sleep: Awaitable sleep
            clock: Monotonic clock in seconds
        """
        self.gaps = {**DEFAULT_GAPS, **(gaps or {})}
        self._sleep = sleep
        self._clock = clock
        self._lock = asyncio.Lock()
        self._last_call: float | None = None
        self.waited = 0.0

    @classmethod
    def from_config(
        cls,
        config: "ScanConfig",
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> "RequestPacer":
        return cls(
            gaps={
                LIST: config.list_delay_ms / 1000.0,
                DETAIL: config.detail_delay_ms / 1000.0,
                LOOKUP: config.lookup_delay_ms / 1000.0,
                REFRESH: config.refresh_delay_ms / 1000.0,
            },
            sleep=sleep,
        )

    async def _wait(self, site: str) -> None:
        gap = self.gaps.get(site, 0.0)
        if gap <= 0:
            return
        if self._last_call is None:
            wait_time = gap
        else:
            wait_time = gap - (self._clock() - self._last_call)
        if wait_time > 0:
            self.waited += wait_time
            await self._sleep(wait_time)

    @asynccontextmanager
    async def slot(self, site: str) -> AsyncIterator[None]:
        """Hold the call slot for one API call.

        Usage:
            async with pacer.slot(LIST):
                await client.list_orders(...)
        """
        async with self._lock:
            await self._wait(site)
            try:
                yield
            finally:
                self._last_call = self._clock()
