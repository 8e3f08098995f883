"""Azure AI Vision and Azure Document Intelligence adapters.

Both authenticate with the ``Ocp-Apim-Subscription-Key`` header and take
the resource endpoint from the catalog descriptor. Document Intelligence
is asynchronous: the analyze call returns an ``Operation-Location`` that is
polled until the layout result is ready.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from ...clock import Clock, SystemClock
from ...exceptions import ProviderTransientError
from ...models import Bounds, ElementType, ProviderResult, UIElement
from .base import HTTPAdapter
from .parsing import element_type_for

if TYPE_CHECKING:
    from ...catalog.models import ProviderDescriptor
    from ...frames import FrameImage

_ANALYZE_PATH = "/vision/v3.2/analyze"
_LAYOUT_PATH = "/formrecognizer/documentModels/prebuilt-layout:analyze"


class AzureVisionAdapter(HTTPAdapter):
    family = "azure-vision"

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
        url = descriptor.endpoint.rstrip("/") + _ANALYZE_PATH
        headers = {
            "Ocp-Apim-Subscription-Key": secret or "",
            "Content-Type": "application/octet-stream",
        }
        async with session.post(
            url,
            params={"visualFeatures": "Description,Tags,Objects"},
            data=image.data,
            headers=headers,
        ) as resp:
            await self._raise_for_status(resp, "Azure Vision")
            data = await resp.json()

        captions = (data.get("description") or {}).get("captions") or []
        caption = captions[0] if captions else {}
        elements = [
            UIElement(
                type=element_type_for(obj.get("object", "")),
                bounds=Bounds(
                    x=obj.get("rectangle", {}).get("x", 0),
                    y=obj.get("rectangle", {}).get("y", 0),
                    width=obj.get("rectangle", {}).get("w", 0),
                    height=obj.get("rectangle", {}).get("h", 0),
                ),
                text=obj.get("object", ""),
                confidence=float(obj.get("confidence", 0.0)),
            )
            for obj in data.get("objects") or []
        ]
        tags = [t.get("name", "") for t in data.get("tags") or [] if t.get("name")]
        return ProviderResult(
            description=caption.get("text", "No description available"),
            elements=elements,
            confidence=float(caption.get("confidence", 0.5)),
            model="v3.2",
            metadata={"tags": tags},
        )


class AzureDocumentAdapter(HTTPAdapter):
    family = "azure-document"

    def __init__(
        self,
        clock: Clock | None = None,
        timeout_seconds: float = 30.0,
        poll_interval: float = 2.0,
        max_polls: int = 12,
        confidence: float = 0.9,
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
        auth = {"Ocp-Apim-Subscription-Key": secret or ""}
        url = descriptor.endpoint.rstrip("/") + _LAYOUT_PATH
        async with session.post(
            url,
            params={"api-version": "2023-07-31"},
            data=image.data,
            headers={**auth, "Content-Type": "application/octet-stream"},
        ) as resp:
            await self._raise_for_status(resp, "Azure Document Intelligence")
            operation = resp.headers.get("Operation-Location", "")
        if not operation:
            raise ProviderTransientError(
                "Azure Document Intelligence returned no Operation-Location"
            )

        result = None
        for _ in range(self._max_polls):
            await self._clock.sleep(self._poll_interval)
            async with session.get(operation, headers=auth) as resp:
                await self._raise_for_status(resp, "Azure Document Intelligence")
                status = await resp.json()
            if status.get("status") == "succeeded":
                result = status.get("analyzeResult") or {}
                break
            if status.get("status") == "failed":
                raise ProviderTransientError("Azure Document Intelligence analysis failed")
        if result is None:
            raise ProviderTransientError("Azure Document Intelligence did not finish in time")

        paragraphs = [p.get("content", "") for p in result.get("paragraphs") or []]
        tables = result.get("tables") or []
        lines = ["Document Analysis Results:", ""]
        if paragraphs:
            lines.append("Text Content:")
            lines.extend(f"{i}. {p}" for i, p in enumerate(paragraphs, 1))
            lines.append("")
        if tables:
            lines.append(f"Tables Found: {len(tables)}")
            lines.extend(
                f"Table {i}: {t.get('rowCount', 0)} rows, {t.get('columnCount', 0)} columns"
                for i, t in enumerate(tables, 1)
            )
        return ProviderResult(
            description="\n".join(lines).strip(),
            elements=[
                UIElement(type=ElementType.TEXT, text=p, confidence=0.9)
                for p in paragraphs
            ],
            text=paragraphs,
            confidence=self._confidence,
            model="prebuilt-layout",
            metadata={
                "pages": len(result.get("pages") or []),
                "paragraphs": len(paragraphs),
                "tables": len(tables),
            },
        )
