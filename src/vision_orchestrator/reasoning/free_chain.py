"""Free-provider chain: rotates through zero-cost providers until one answers."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from ..exceptions import NoFreeProviderSucceeded, ProviderError

if TYPE_CHECKING:
    from ..catalog.models import ProviderDescriptor
    from ..catalog.probe import AvailabilityProbe
    from ..catalog.registry import ProviderCatalog
    from ..credentials.pool import CredentialPool
    from ..frames import FrameImage
    from ..models import ProviderResult
    from ..ranking import ProviderSelector
    from .invoker import ProviderInvoker

logger = logging.getLogger("vision-orchestrator")


class FreeProviderChain:
    """Round-robin over available zero-cost providers.

    Keyed free tiers draw their credential from the pool and are skipped
    when the pool has none usable. The cursor advances past the provider
    that answered, so consecutive frames spread over the free tier.
    """

    def __init__(
        self,
        catalog: ProviderCatalog,
        pool: CredentialPool,
        invoker: ProviderInvoker,
        selector: ProviderSelector | None = None,
        probe: AvailabilityProbe | None = None,
    ) -> None:
        self._catalog = catalog
        self._pool = pool
        self._invoker = invoker
        self._selector = selector
        self._probe = probe
        self._cursor = 0

    def candidates(self, image: FrameImage) -> list[ProviderDescriptor]:
        """Free providers the preferences allow, minus the quality/speed floors."""
        if self._selector is not None:
            allowed = self._selector.eligible_providers(
                image.size, image.format, apply_thresholds=False
            )
        else:
            allowed = [
                d
                for d in self._catalog.descriptors()
                if d.available and d.accepts(image.size, image.format)
            ]
        return [d for d in allowed if d.is_free]

    async def analyze(
        self, image: FrameImage, prompt: str
    ) -> tuple[ProviderResult, ProviderDescriptor]:
        if self._probe is not None:
            await self._probe.refresh()

        providers = self.candidates(image)
        if not providers:
            raise NoFreeProviderSucceeded("No free provider is available for this image")

        start = self._cursor % len(providers)
        failures: list[str] = []
        for offset in range(len(providers)):
            idx = (start + offset) % len(providers)
            descriptor = providers[idx]
            credential = None
            if descriptor.service:
                credential = self._pool.next(descriptor.service)
                if credential is None and descriptor.requires_api_key:
                    logger.debug("Skipping %s: no usable key", descriptor.id)
                    continue
            try:
                result, _ = await self._invoker.invoke(
                    descriptor, image, prompt, credential=credential
                )
            except ProviderError as e:
                failures.append(f"{descriptor.id}: {e}")
                continue
            self._cursor = (idx + 1) % len(providers)
            return result, descriptor

        self._cursor = (start + 1) % len(providers)
        detail = "; ".join(failures) if failures else "no usable keys"
        raise NoFreeProviderSucceeded(f"All free providers failed ({detail})")
