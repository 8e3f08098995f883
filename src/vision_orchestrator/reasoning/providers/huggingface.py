"""Hugging Face Inference API image captioning (BLIP).

The hosted captioning models ignore the prompt; the caption is mined for
UI hints instead. A token is optional but raises the rate limit.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from ...exceptions import ProviderTransientError
from ...models import ProviderResult
from .base import HTTPAdapter
from .parsing import result_from_description

if TYPE_CHECKING:
    from ...catalog.models import ProviderDescriptor
    from ...frames import FrameImage


class HuggingFaceAdapter(HTTPAdapter):
    family = "huggingface"

    def __init__(self, timeout_seconds: float = 30.0, confidence: float = 0.8):
        super().__init__(timeout_seconds)
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
        headers = {"Content-Type": image.mime_type}
        if secret:
            headers["Authorization"] = f"Bearer {secret}"
        async with session.post(
            descriptor.endpoint, data=image.data, headers=headers
        ) as resp:
            await self._raise_for_status(resp, "Hugging Face")
            data = await resp.json()

        if isinstance(data, list) and data and isinstance(data[0], dict):
            caption = data[0].get("generated_text", "")
        elif isinstance(data, dict):
            caption = data.get("generated_text", "")
        else:
            caption = ""
        if not caption:
            raise ProviderTransientError("Hugging Face returned no caption")
        return result_from_description(
            caption, confidence=self._confidence, model=model or descriptor.default_model
        )
