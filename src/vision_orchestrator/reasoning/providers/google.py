"""Google Gemini vision adapter (free Flash tier and Pro)."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from ...exceptions import ProviderTransientError
from ...models import ProviderResult
from .base import VisionAdapter
from .parsing import result_from_text

if TYPE_CHECKING:
    from ...catalog.models import ProviderDescriptor
    from ...frames import FrameImage


class GeminiAdapter(VisionAdapter):
    family = "google"

    def __init__(self, confidence: float = 0.96):
        try:
            from google import genai
        except ImportError:
            raise ImportError(
                "Google GenAI SDK not installed. Run: pip install vision-orchestrator[google]"
            )
        self._genai = genai
        self._confidence = confidence
        self._clients: dict[str, Any] = {}

    def _client(self, secret: str) -> Any:
        client = self._clients.get(secret)
        if client is None:
            client = self._genai.Client(api_key=secret)
            self._clients[secret] = client
        return client

    async def analyze(
        self,
        image: FrameImage,
        prompt: str,
        *,
        descriptor: ProviderDescriptor,
        secret: str | None,
        model: str,
    ) -> ProviderResult:
        from google.genai import types

        model = model or descriptor.default_model or "gemini-2.5-flash"
        image_part = types.Part.from_bytes(data=image.data, mime_type=image.mime_type)
        text_part = types.Part.from_text(text=prompt)

        response = await self._client(secret or "").aio.models.generate_content(
            model=model,
            contents=[image_part, text_part],
            config=types.GenerateContentConfig(max_output_tokens=1500, temperature=0.1),
        )
        if not response.text:
            raise ProviderTransientError("Gemini returned an empty response")
        return result_from_text(response.text, confidence=self._confidence, model=model)
