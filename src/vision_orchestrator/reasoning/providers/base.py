"""Vision adapter abstraction: every provider family implements this interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Optional

import aiohttp

from ...frames import FrameImage
from ...models import ProviderResult
from .errors import error_for_status

if TYPE_CHECKING:
    from ...catalog.models import ProviderDescriptor


class VisionAdapter(ABC):
    """Speaks one provider family's wire protocol.

    Adapters are stateless with respect to routing: the caller passes the
    catalog descriptor (endpoint, defaults), the credential secret (or None
    for keyless providers) and the model to use. Failures are raised as
    ProviderError subclasses, or as raw SDK/network exceptions that
    ``classify_exception`` understands.
    """

    family: str = ""

    @abstractmethod
    async def analyze(
        self,
        image: FrameImage,
        prompt: str,
        *,
        descriptor: ProviderDescriptor,
        secret: str | None,
        model: str,
    ) -> ProviderResult:
        """Send one frame + prompt and return the uniform result."""
        ...

    async def close(self) -> None:
        """Release connections. Override when the adapter holds any."""


class HTTPAdapter(VisionAdapter):
    """Base for adapters that talk plain HTTP through a shared aiohttp session."""

    def __init__(self, timeout_seconds: float = 30.0) -> None:
        self._timeout_seconds = timeout_seconds
        self._session: Optional[aiohttp.ClientSession] = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            timeout = aiohttp.ClientTimeout(total=self._timeout_seconds)
            self._session = aiohttp.ClientSession(timeout=timeout)
        return self._session

    @staticmethod
    async def _raise_for_status(resp: aiohttp.ClientResponse, provider: str) -> None:
        if resp.status < 400:
            return
        try:
            body = (await resp.text())[:300]
        except (aiohttp.ClientError, UnicodeDecodeError):
            body = ""
        raise error_for_status(
            resp.status, f"{provider} returned HTTP {resp.status}: {body}", resp.headers
        )

    async def close(self) -> None:
        if self._session:
            await self._session.close()
            self._session = None
