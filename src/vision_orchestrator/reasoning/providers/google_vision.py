"""Google Cloud Vision REST adapter (text detection + object localization)."""

from __future__ import annotations

from typing import TYPE_CHECKING

from ...models import ElementType, ProviderResult, UIElement
from .base import HTTPAdapter
from .parsing import bounds_from_points, element_type_for

if TYPE_CHECKING:
    from ...catalog.models import ProviderDescriptor
    from ...frames import FrameImage

DEFAULT_ENDPOINT = "https://vision.googleapis.com/v1/images:annotate"

# Used to scale normalized vertices when the frame could not be decoded
_FALLBACK_RESOLUTION = (1920, 1080)


class GoogleCloudVisionAdapter(HTTPAdapter):
    family = "google-cloud-vision"

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
        body = {
            "requests": [
                {
                    "image": {"content": image.to_base64()},
                    "features": [
                        {"type": "TEXT_DETECTION", "maxResults": 50},
                        {"type": "OBJECT_LOCALIZATION", "maxResults": 50},
                    ],
                }
            ]
        }
        async with session.post(
            descriptor.endpoint or DEFAULT_ENDPOINT,
            params={"key": secret or ""},
            json=body,
        ) as resp:
            await self._raise_for_status(resp, "Google Cloud Vision")
            data = await resp.json()

        annotations = (data.get("responses") or [{}])[0]
        width, height = (image.width, image.height)
        if not width or not height:
            width, height = _FALLBACK_RESOLUTION

        elements: list[UIElement] = []
        text: list[str] = []
        # First text annotation is the full-page text block; skip it
        for annotation in (annotations.get("textAnnotations") or [])[1:]:
            vertices = annotation.get("boundingPoly", {}).get("vertices", [])
            elements.append(
                UIElement(
                    type=ElementType.TEXT,
                    bounds=bounds_from_points(
                        (v.get("x", 0), v.get("y", 0)) for v in vertices
                    ),
                    text=annotation.get("description", ""),
                    confidence=0.9,
                )
            )
            text.append(annotation.get("description", ""))

        for obj in annotations.get("localizedObjectAnnotations") or []:
            vertices = obj.get("boundingPoly", {}).get("normalizedVertices", [])
            name = obj.get("name", "")
            elements.append(
                UIElement(
                    type=element_type_for(name),
                    bounds=bounds_from_points(
                        (round(v.get("x", 0) * width), round(v.get("y", 0) * height))
                        for v in vertices
                    ),
                    text=name,
                    confidence=float(obj.get("score", 0.0)),
                )
            )

        full_text = (annotations.get("textAnnotations") or [{}])[0].get("description", "")
        return ProviderResult(
            description=full_text.strip().replace("\n", " ")[:500],
            elements=elements,
            text=text,
            confidence=self._confidence,
            model="cloud-vision-v1",
        )
