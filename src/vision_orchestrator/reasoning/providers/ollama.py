"""Local Ollama daemon (LLaVA and other vision models), keyless."""

from __future__ import annotations

from typing import TYPE_CHECKING

from ...models import ProviderResult
from .base import HTTPAdapter
from .parsing import result_from_text

if TYPE_CHECKING:
    from ...catalog.models import ProviderDescriptor
    from ...frames import FrameImage

DEFAULT_ENDPOINT = "http://localhost:11434/api/generate"


class OllamaAdapter(HTTPAdapter):
    family = "ollama"

    def __init__(self, timeout_seconds: float = 30.0, confidence: float = 0.9):
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
        payload = {
            "model": model or "llava",
            "prompt": prompt,
            "images": [image.to_base64()],
            "stream": False,
        }
        async with session.post(
            descriptor.endpoint or DEFAULT_ENDPOINT, json=payload
        ) as resp:
            await self._raise_for_status(resp, "Ollama")
            data = await resp.json()
        return result_from_text(
            str(data.get("response", "")),
            confidence=self._confidence,
            model=model or "llava",
        )
