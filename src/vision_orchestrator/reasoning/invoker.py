"""Provider invoker: one bounded adapter call plus its bookkeeping.

Every provider call in the orchestrator goes through ``ProviderInvoker.invoke``,
so credential state (usage, quarantine, deactivation) and usage records are
updated in exactly one place.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from ..clock import Clock, SystemClock
from ..exceptions import (
    ImageValidationError,
    ProviderAuthError,
    ProviderError,
    ProviderRateLimitError,
)
from ..reporting import ErrorReporter
from .providers.errors import DEFAULT_RETRY_AFTER_SECONDS, classify_exception

if TYPE_CHECKING:
    from ..catalog.models import ProviderDescriptor
    from ..catalog.registry import ProviderCatalog
    from ..credentials.models import Credential
    from ..credentials.pool import CredentialPool
    from ..frames import FrameImage
    from ..models import ProviderResult
    from ..usage import UsageTracker

logger = logging.getLogger("vision-orchestrator")

# Maximum time to wait for a single provider call (seconds).
DEFAULT_CALL_TIMEOUT = 30.0


class ProviderInvoker:
    def __init__(
        self,
        catalog: ProviderCatalog,
        pool: CredentialPool,
        tracker: UsageTracker,
        reporter: ErrorReporter,
        clock: Clock | None = None,
        call_timeout_seconds: float = DEFAULT_CALL_TIMEOUT,
    ) -> None:
        self._catalog = catalog
        self._pool = pool
        self._tracker = tracker
        self._reporter = reporter
        self._clock = clock or SystemClock()
        self._timeout = call_timeout_seconds

    async def invoke(
        self,
        descriptor: ProviderDescriptor,
        image: FrameImage,
        prompt: str,
        *,
        credential: Credential | None = None,
        timeout: float | None = None,
    ) -> tuple[ProviderResult, float]:
        """Call the provider's adapter. Returns (result, latency_ms).

        Failures are classified and re-raised as ``ProviderError`` subclasses
        after the credential and usage state have been updated.
        """
        adapter = self._catalog.adapter_for(descriptor.id)
        model = self._catalog.selected_model(descriptor.id)
        timeout = timeout if timeout is not None else self._timeout
        started = self._clock.monotonic()
        try:
            result = await asyncio.wait_for(
                adapter.analyze(
                    image,
                    prompt,
                    descriptor=descriptor,
                    secret=credential.secret if credential else None,
                    model=model,
                ),
                timeout=timeout,
            )
        except Exception as e:
            latency_ms = (self._clock.monotonic() - started) * 1000
            error = classify_exception(e)
            self._record_failure(descriptor, credential, error, latency_ms)
            if error is e:
                raise
            raise error from e

        latency_ms = (self._clock.monotonic() - started) * 1000
        if credential is not None:
            self._pool.mark_used(credential.id, True)
        self._tracker.record(
            descriptor.id, True, latency_ms, descriptor.cost_per_request
        )
        logger.debug(
            "%s answered in %.0fms (confidence %.2f)",
            descriptor.id,
            latency_ms,
            result.confidence,
        )
        return result, latency_ms

    def _record_failure(
        self,
        descriptor: ProviderDescriptor,
        credential: Credential | None,
        error: ProviderError,
        latency_ms: float,
    ) -> None:
        details = {
            "provider": descriptor.id,
            "credential": credential.name if credential else None,
            "status": error.status,
        }
        if credential is not None:
            self._pool.mark_used(credential.id, False)
        self._tracker.record(descriptor.id, False, latency_ms)

        if isinstance(error, ProviderRateLimitError):
            retry_after = error.retry_after or DEFAULT_RETRY_AFTER_SECONDS
            if credential is not None:
                self._pool.mark_rate_limited(credential.id, retry_after)
            self._tracker.record_rate_limit(descriptor.id)
            self._reporter.report(
                "rate_limited",
                f"{descriptor.id} rate limited, retry after {retry_after:.0f}s",
                component="invoker",
                details=details,
                level=logging.INFO,
            )
        elif isinstance(error, ProviderAuthError):
            if credential is not None:
                self._pool.set_active(credential.id, False)
            self._reporter.report(
                "credential_rejected",
                f"{descriptor.id} rejected credential: {error}",
                component="invoker",
                details=details,
                level=logging.ERROR,
            )
        elif isinstance(error, ImageValidationError):
            self._reporter.report(
                "image_rejected",
                f"{descriptor.id} rejected the image: {error}",
                component="invoker",
                details=details,
            )
        else:
            self._reporter.report(
                "provider_failed",
                f"{descriptor.id} failed: {error}",
                component="invoker",
                details=details,
            )
