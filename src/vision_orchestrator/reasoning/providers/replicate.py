"""Replicate-hosted open vision models (LLaVA), polled predictions."""

from __future__ import annotations

from typing import TYPE_CHECKING

from ...clock import Clock, SystemClock
from ...exceptions import ProviderTransientError
from ...models import ProviderResult
from .base import HTTPAdapter
from .parsing import result_from_text

if TYPE_CHECKING:
    from ...catalog.models import ProviderDescriptor
    from ...frames import FrameImage

DEFAULT_ENDPOINT = "https://api.replicate.com/v1/predictions"
DEFAULT_VERSION = (
    "yorickvp/llava-13b:b5f6212d032508382d61ff00469ddda3e32fd8a0e75dc39d8a4191bb742157fb"
)


class ReplicateAdapter(HTTPAdapter):
    family = "replicate"

    def __init__(
        self,
        clock: Clock | None = None,
        timeout_seconds: float = 30.0,
        poll_interval: float = 2.0,
        max_polls: int = 12,
        confidence: float = 0.8,
    ):
        super().__init__(timeout_seconds)
        self._clock = clock or SystemClock()
        self._poll_interval = poll_interval
        self._max_polls = max_polls
        self._confidence = confidence

    async def analyze(
        self,
        image: FrameImage,
        prompt: str,
        *,
        descriptor: ProviderDescriptor,
        secret: str | None,
        model: str,
    ) -> ProviderResult:
        session = self._get_session()
        endpoint = descriptor.endpoint or DEFAULT_ENDPOINT
        version = model or descriptor.default_model or DEFAULT_VERSION
        headers = {"Authorization": f"Bearer {secret or ''}"}
        body = {
            "version": version,
            "input": {
                "image": f"data:{image.mime_type};base64,{image.to_base64()}",
                "prompt": prompt,
                "max_tokens": 1000,
            },
        }
        async with session.post(endpoint, json=body, headers=headers) as resp:
            await self._raise_for_status(resp, "Replicate")
            prediction = await resp.json()

        poll_url = (prediction.get("urls") or {}).get("get") or (
            f"{endpoint.rstrip('/')}/{prediction.get('id', '')}"
        )
        output = None
        for _ in range(self._max_polls):
            await self._clock.sleep(self._poll_interval)
            async with session.get(poll_url, headers=headers) as resp:
                await self._raise_for_status(resp, "Replicate")
                prediction = await resp.json()
            status = prediction.get("status")
            if status == "succeeded":
                output = prediction.get("output")
                break
            if status in ("failed", "canceled"):
                raise ProviderTransientError(
                    f"Replicate prediction {status}: {prediction.get('error', '')}"
                )
        if output is None:
            raise ProviderTransientError("Replicate prediction did not finish in time")

        text = "".join(output) if isinstance(output, list) else str(output)
        return result_from_text(
            text or "Unable to generate description",
            confidence=self._confidence,
            model=version.split(":")[0],
        )
