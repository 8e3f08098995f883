"""OpenAI-compatible chat completions with image input.

Covers: OpenAI (GPT-4o), OpenRouter, Groq, Together, DeepInfra, Fireworks
and any service that implements the OpenAI chat completions API with
vision support. The base URL comes from the descriptor's endpoint.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from ...exceptions import ProviderTransientError
from ...models import ProviderResult
from .base import VisionAdapter
from .parsing import result_from_text

if TYPE_CHECKING:
    from ...catalog.models import ProviderDescriptor
    from ...frames import FrameImage

_COMPLETIONS_SUFFIX = "/chat/completions"


def base_url_for(endpoint: str) -> str | None:
    """SDK base URL from a full chat-completions endpoint."""
    if not endpoint:
        return None
    if endpoint.endswith(_COMPLETIONS_SUFFIX):
        return endpoint[: -len(_COMPLETIONS_SUFFIX)]
    return endpoint


class OpenAICompatAdapter(VisionAdapter):
    family = "openai-compatible"

    def __init__(self, timeout_seconds: float = 30.0, confidence: float = 0.95):
        try:
            from openai import AsyncOpenAI
        except ImportError:
            raise ImportError(
                "OpenAI SDK not installed. Run: pip install vision-orchestrator[openai]"
            )
        self._client_cls = AsyncOpenAI
        self._timeout_seconds = timeout_seconds
        self._confidence = confidence
        self._clients: dict[tuple[str, str | None], Any] = {}

    def _client(self, secret: str | None, base_url: str | None) -> Any:
        key = (secret or "", base_url)
        client = self._clients.get(key)
        if client is None:
            kwargs: dict = {
                "api_key": secret or "not-needed",
                "timeout": self._timeout_seconds,
                "max_retries": 0,  # Retries are the orchestrator's job
            }
            if base_url:
                kwargs["base_url"] = base_url
            client = self._client_cls(**kwargs)
            self._clients[key] = client
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
        client = self._client(secret, base_url_for(descriptor.endpoint))
        model = model or descriptor.default_model or "gpt-4o"
        response = await client.chat.completions.create(
            model=model,
            max_tokens=1500,
            temperature=0.1,
            messages=[
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": prompt},
                        {
                            "type": "image_url",
                            "image_url": {
                                "url": f"data:{image.mime_type};base64,{image.to_base64()}",
                            },
                        },
                    ],
                }
            ],
        )
        content = response.choices[0].message.content
        if content is None:
            # Some providers return None for content (e.g. refusal, empty response)
            raise ProviderTransientError("Provider returned empty content (None)")
        return result_from_text(content, confidence=self._confidence, model=model)

    async def close(self) -> None:
        for client in self._clients.values():
            await client.close()
        self._clients.clear()
