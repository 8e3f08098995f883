"""Anthropic (Claude) vision adapter."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from ...models import ProviderResult
from .base import VisionAdapter
from .parsing import result_from_text

if TYPE_CHECKING:
    from ...catalog.models import ProviderDescriptor
    from ...frames import FrameImage


class AnthropicAdapter(VisionAdapter):
    family = "anthropic"

    def __init__(self, timeout_seconds: float = 30.0, confidence: float = 0.97):
        try:
            import anthropic
        except ImportError:
            raise ImportError(
                "Anthropic SDK not installed. Run: pip install vision-orchestrator[anthropic]"
            )
        self._sdk = anthropic
        self._timeout_seconds = timeout_seconds
        self._confidence = confidence
        self._clients: dict[str, Any] = {}

    def _client(self, secret: str) -> Any:
        client = self._clients.get(secret)
        if client is None:
            client = self._sdk.AsyncAnthropic(
                api_key=secret, timeout=self._timeout_seconds, max_retries=0
            )
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
        model = model or descriptor.default_model or "claude-3-5-sonnet-20241022"
        response = await self._client(secret or "").messages.create(
            model=model,
            max_tokens=1500,
            messages=[
                {
                    "role": "user",
                    "content": [
                        {
                            "type": "image",
                            "source": {
                                "type": "base64",
                                "media_type": image.mime_type,
                                "data": image.to_base64(),
                            },
                        },
                        {"type": "text", "text": prompt},
                    ],
                }
            ],
        )
        return result_from_text(
            response.content[0].text, confidence=self._confidence, model=model
        )

    async def close(self) -> None:
        for client in self._clients.values():
            await client.close()
        self._clients.clear()
