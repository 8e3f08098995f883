"""Availability probe: keeps each catalog descriptor's ``available`` flag current.

Local daemons (Ollama) are probed with a GET on their ``probe_url``; cloud
providers without a probe URL are assumed up, unless they have no endpoint
configured at all.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

import aiohttp

from ..clock import Clock, SystemClock
from .registry import ProviderCatalog

logger = logging.getLogger("vision-orchestrator")


class AvailabilityProbe:
    def __init__(
        self,
        catalog: ProviderCatalog,
        clock: Clock | None = None,
        timeout_seconds: float = 5.0,
        min_interval_seconds: float = 60.0,
    ) -> None:
        self._catalog = catalog
        self._clock = clock or SystemClock()
        self._timeout_seconds = timeout_seconds
        self._min_interval = min_interval_seconds
        self._last_refresh: float | None = None
        self._session: Optional[aiohttp.ClientSession] = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            timeout = aiohttp.ClientTimeout(total=self._timeout_seconds)
            self._session = aiohttp.ClientSession(timeout=timeout)
        return self._session

    async def _check(self, url: str) -> bool:
        session = self._get_session()
        try:
            async with session.get(url) as resp:
                return resp.status == 200
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
            logger.debug("Probe %s failed: %s", url, e)
            return False

    async def refresh(self, force: bool = False) -> dict[str, bool]:
        """Re-check availability. Returns provider id -> available.

        Calls closer together than ``min_interval_seconds`` are skipped
        (returning the current flags) unless ``force`` is set.
        """
        now = self._clock.monotonic()
        if (
            not force
            and self._last_refresh is not None
            and now - self._last_refresh < self._min_interval
        ):
            return {d.id: d.available for d in self._catalog.descriptors()}
        self._last_refresh = now

        results: dict[str, bool] = {}
        for d in self._catalog.descriptors():
            if d.probe_url:
                available = await self._check(d.probe_url)
            else:
                available = bool(d.endpoint)
            self._catalog.set_available(d.id, available)
            results[d.id] = available
        return results

    async def close(self) -> None:
        if self._session:
            await self._session.close()
            self._session = None
