"""Frame orchestrator: picks who analyzes each frame, with retry and fallback.

Per frame:
  1. Free chain, unless the mode is premium_preferred.
  2. Paid services in ``AnalysisOptions.paid_services`` order, unless the
     mode is free_only. Each service gets ``max_retries`` attempts, each on
     the next credential from the pool.
  3. Free chain as a last resort when ``fallback_to_free`` is set and it
     was not already tried for this frame.
  4. Otherwise ``AllProvidersExhausted``. The batch driver turns that into
     a fallback result and moves on to the next frame.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING

from ..clock import Clock, SystemClock
from ..config import AnalysisOptions, ProviderMode
from ..exceptions import (
    AllProvidersExhausted,
    ImageValidationError,
    NoCredentialAvailable,
    NoFreeProviderSucceeded,
    ProviderAuthError,
    ProviderError,
    ProviderRateLimitError,
)
from ..frames import FrameImage, FrameRef, load_frame
from ..models import FrameAnalysisResult
from ..reporting import ErrorReporter
from .prompts import build_analysis_prompt

if TYPE_CHECKING:
    from ..catalog.models import ProviderDescriptor
    from ..credentials.models import Credential
    from ..credentials.pool import CredentialPool
    from ..models import ProviderResult
    from ..ranking import ProviderSelector
    from .free_chain import FreeProviderChain
    from .invoker import ProviderInvoker

logger = logging.getLogger("vision-orchestrator")


def backoff_delay(base_seconds: float, attempt: int) -> float:
    """Delay before retry ``attempt + 1``: ``base * 2**attempt``."""
    return base_seconds * (2**attempt)


@dataclass
class PaidOutcome:
    result: ProviderResult
    descriptor: ProviderDescriptor
    credential: Credential


class VisionOrchestrator:
    def __init__(
        self,
        pool: CredentialPool,
        selector: ProviderSelector,
        invoker: ProviderInvoker,
        free_chain: FreeProviderChain,
        reporter: ErrorReporter,
        clock: Clock | None = None,
    ) -> None:
        self._pool = pool
        self._selector = selector
        self._invoker = invoker
        self._free_chain = free_chain
        self._reporter = reporter
        self._clock = clock or SystemClock()

    def _next_credential(self, service: str) -> Credential:
        credential = self._pool.next(service)
        if credential is None:
            raise NoCredentialAvailable(service)
        return credential

    async def try_service_with_retry(
        self,
        service: str,
        image: FrameImage,
        prompt: str,
        options: AnalysisOptions,
    ) -> PaidOutcome | None:
        """Up to ``max_retries`` attempts against one paid service.

        Rate-limited or rejected credentials are rotated out with no delay.
        Other transient failures back off ``retry_delay * 2**attempt``.
        Returns None when the service is out of credentials or attempts.
        """
        descriptor = self._selector.best_for_service(
            service, image.size, image.format, options.use_case
        )
        if descriptor is None:
            logger.debug("No eligible %s provider for this frame", service)
            return None

        for attempt in range(options.max_retries):
            try:
                credential = self._next_credential(service)
            except NoCredentialAvailable as e:
                logger.debug("%s", e)
                return None

            logger.debug(
                "Trying %s with key %s (attempt %d/%d)",
                descriptor.id,
                credential.name,
                attempt + 1,
                options.max_retries,
            )
            try:
                result, _ = await self._invoker.invoke(
                    descriptor,
                    image,
                    prompt,
                    credential=credential,
                    timeout=options.call_timeout_seconds,
                )
                return PaidOutcome(result, descriptor, credential)
            except (ProviderRateLimitError, ProviderAuthError):
                continue
            except ImageValidationError:
                return None
            except ProviderError as e:
                logger.warning(
                    "%s failed (attempt %d/%d): %s",
                    descriptor.id,
                    attempt + 1,
                    options.max_retries,
                    e,
                )
                if attempt < options.max_retries - 1:
                    await self._clock.sleep(
                        backoff_delay(options.retry_delay_seconds, attempt)
                    )
        return None

    async def _try_free(
        self, image: FrameImage, prompt: str
    ) -> tuple[ProviderResult, ProviderDescriptor] | None:
        try:
            return await self._free_chain.analyze(image, prompt)
        except NoFreeProviderSucceeded as e:
            logger.debug("Free chain: %s", e)
            return None

    async def analyze_frame(
        self, image: FrameImage, options: AnalysisOptions | None = None
    ) -> FrameAnalysisResult:
        """Analyze one frame. Raises AllProvidersExhausted if nothing answered."""
        options = options or AnalysisOptions()
        started = self._clock.monotonic()
        prompt = build_analysis_prompt(options.use_case, options.custom_prompt)
        mode = self._selector.preferences.mode

        def elapsed_ms() -> float:
            return (self._clock.monotonic() - started) * 1000

        free_tried = False
        if mode != ProviderMode.PREMIUM_PREFERRED:
            free_tried = True
            free = await self._try_free(image, prompt)
            if free is not None:
                result, descriptor = free
                return FrameAnalysisResult.from_provider(
                    result,
                    frame_index=image.index,
                    timestamp=image.timestamp,
                    provider=descriptor.id,
                    processing_time_ms=elapsed_ms(),
                    used_free_provider=True,
                )

        if mode != ProviderMode.FREE_ONLY:
            for service in options.paid_services:
                outcome = await self.try_service_with_retry(
                    service, image, prompt, options
                )
                if outcome is not None:
                    return FrameAnalysisResult.from_provider(
                        outcome.result,
                        frame_index=image.index,
                        timestamp=image.timestamp,
                        provider=f"{outcome.descriptor.id} ({outcome.credential.name})",
                        processing_time_ms=elapsed_ms(),
                        used_free_provider=False,
                    )

        if options.fallback_to_free and not free_tried:
            free = await self._try_free(image, prompt)
            if free is not None:
                result, descriptor = free
                return FrameAnalysisResult.from_provider(
                    result,
                    frame_index=image.index,
                    timestamp=image.timestamp,
                    provider=descriptor.id,
                    processing_time_ms=elapsed_ms(),
                    used_free_provider=True,
                )

        raise AllProvidersExhausted(
            f"All vision providers failed for frame {image.index}"
        )

    async def analyze_frames(
        self,
        frames: Sequence[FrameRef | FrameImage],
        options: AnalysisOptions | None = None,
        cancel: asyncio.Event | None = None,
    ) -> list[FrameAnalysisResult]:
        """Analyze frames strictly in order, one result per frame.

        A frame no provider could handle yields a fallback result instead of
        aborting the batch. Setting ``cancel`` stops the batch between frames;
        the results gathered so far are returned.
        """
        options = options or AnalysisOptions()
        logger.info("Analyzing %d frames", len(frames))
        results: list[FrameAnalysisResult] = []

        for position, frame in enumerate(frames):
            if cancel is not None and cancel.is_set():
                logger.info(
                    "Batch cancelled after %d/%d frames", position, len(frames)
                )
                break
            started = self._clock.monotonic()
            try:
                image = frame if isinstance(frame, FrameImage) else load_frame(frame)
                result = await self.analyze_frame(image, options)
            except (AllProvidersExhausted, ImageValidationError) as e:
                self._reporter.report(
                    "frame_failed",
                    str(e),
                    component="orchestrator",
                    details={"frame_index": frame.index},
                    level=logging.ERROR,
                )
                results.append(
                    FrameAnalysisResult.fallback(
                        frame.index,
                        frame.timestamp,
                        (self._clock.monotonic() - started) * 1000,
                    )
                )
                continue

            results.append(result)
            delay = (
                options.free_frame_delay_seconds
                if result.used_free_provider
                else options.paid_frame_delay_seconds
            )
            await self._clock.sleep(delay)

        log_batch_summary(results)
        return results


def log_batch_summary(results: Sequence[FrameAnalysisResult]) -> dict[str, float]:
    """Log and return success/failure counts, free/paid split and averages."""
    analyzed = [r for r in results if not r.is_fallback]
    free = sum(1 for r in analyzed if r.used_free_provider)
    summary = {
        "frames": len(results),
        "succeeded": len(analyzed),
        "failed": len(results) - len(analyzed),
        "free": free,
        "paid": len(analyzed) - free,
        "avg_confidence": (
            sum(r.confidence for r in analyzed) / len(analyzed) if analyzed else 0.0
        ),
        "avg_processing_ms": (
            sum(r.processing_time_ms for r in analyzed) / len(analyzed)
            if analyzed
            else 0.0
        ),
    }
    logger.info(
        "Batch done: %d/%d frames analyzed (%d free, %d paid, %d fallback), "
        "avg confidence %.2f, avg %.0fms",
        summary["succeeded"],
        summary["frames"],
        summary["free"],
        summary["paid"],
        summary["failed"],
        summary["avg_confidence"],
        summary["avg_processing_ms"],
    )
    return summary
