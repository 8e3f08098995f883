"""Turn raw provider output into ProviderResult objects."""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Iterable

from ...models import (
    ActionType,
    Bounds,
    CursorInfo,
    CursorType,
    DetectedAction,
    ElementType,
    ProviderResult,
    UIElement,
)
from .json_extract import extract_json

logger = logging.getLogger("vision-orchestrator")

_BUTTON_RE = re.compile(r"button|btn|click", re.IGNORECASE)
_INPUT_RE = re.compile(r"input|field|textbox|text box", re.IGNORECASE)
_QUOTED_RE = re.compile(r'"([^"]+)"')
_LABELLED_TEXT_RE = re.compile(r'text[:\s]+"?([^".,\n]+)"?', re.IGNORECASE)


def _float(value: Any, default: float = 0.0) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _enum(enum_cls: Any, value: Any, default: Any) -> Any:
    try:
        return enum_cls(str(value).lower())
    except ValueError:
        return default


def element_type_for(name: str) -> ElementType:
    """Best UI element type for a detector's object label."""
    lowered = name.lower()
    for keyword, element_type in (
        ("button", ElementType.BUTTON),
        ("window", ElementType.WINDOW),
        ("menu", ElementType.MENU),
        ("text", ElementType.TEXT),
    ):
        if keyword in lowered:
            return element_type
    return ElementType.OTHER


def bounds_from_points(points: Iterable[tuple[float, float]]) -> Bounds:
    pts = list(points)
    if not pts:
        return Bounds()
    xs = [p[0] for p in pts]
    ys = [p[1] for p in pts]
    return Bounds(x=min(xs), y=min(ys), width=max(xs) - min(xs), height=max(ys) - min(ys))


def _parse_element(raw: Any) -> UIElement | None:
    if not isinstance(raw, dict):
        return None
    b = raw.get("bounds") or {}
    if not isinstance(b, dict):
        b = {}
    return UIElement(
        type=_enum(ElementType, raw.get("type", "other"), ElementType.OTHER),
        bounds=Bounds(
            x=_float(b.get("x")),
            y=_float(b.get("y")),
            width=_float(b.get("width")),
            height=_float(b.get("height")),
        ),
        text=str(raw.get("text") or ""),
        confidence=_float(raw.get("confidence")),
    )


def _parse_action(raw: Any) -> DetectedAction | None:
    if not isinstance(raw, dict):
        return None
    try:
        action_type = ActionType(str(raw.get("type", "")).lower())
    except ValueError:
        return None
    return DetectedAction(
        type=action_type,
        target=str(raw.get("target") or ""),
        value=str(raw.get("value") or ""),
        confidence=_float(raw.get("confidence")),
    )


def result_from_payload(
    payload: dict[str, Any], *, confidence: float, model: str = ""
) -> ProviderResult:
    """Lenient conversion of the JSON shape requested by the analysis prompt."""
    elements = [e for e in map(_parse_element, payload.get("elements") or []) if e]
    actions = [a for a in map(_parse_action, payload.get("actions") or []) if a]
    cursor = None
    raw_cursor = payload.get("cursor")
    if isinstance(raw_cursor, dict):
        cursor = CursorInfo(
            x=_float(raw_cursor.get("x")),
            y=_float(raw_cursor.get("y")),
            visible=bool(raw_cursor.get("visible", True)),
            type=_enum(CursorType, raw_cursor.get("type", "arrow"), CursorType.ARROW),
        )
    text = payload.get("text") or []
    if isinstance(text, str):
        text = [text]
    description = str(payload.get("description") or payload.get("summary") or "")
    return ProviderResult(
        description=description,
        elements=elements,
        cursor=cursor,
        text=[str(t) for t in text],
        actions=actions,
        confidence=confidence,
        model=model,
    )


def result_from_description(
    description: str, *, confidence: float, model: str = "", **metadata: Any
) -> ProviderResult:
    """Mine a free-text caption for element hints and quoted text."""
    elements: list[UIElement] = []
    if _BUTTON_RE.search(description):
        elements.append(
            UIElement(type=ElementType.BUTTON, text="Detected button", confidence=0.6)
        )
    if _INPUT_RE.search(description):
        elements.append(
            UIElement(type=ElementType.INPUT, text="Detected input field", confidence=0.6)
        )
    text = _QUOTED_RE.findall(description) + [
        m.strip() for m in _LABELLED_TEXT_RE.findall(description)
    ]
    return ProviderResult(
        description=description,
        elements=elements,
        text=list(dict.fromkeys(t for t in text if t)),
        confidence=confidence,
        model=model,
        metadata=metadata,
    )


def result_from_text(text: str, *, confidence: float, model: str = "") -> ProviderResult:
    """JSON answer if the model produced one, otherwise a mined caption."""
    try:
        payload = extract_json(text)
    except json.JSONDecodeError:
        logger.debug("Provider answered in prose; mining description")
        return result_from_description(text.strip(), confidence=confidence, model=model)
    result = result_from_payload(payload, confidence=confidence, model=model)
    if not result.description and not result.elements:
        result.description = text.strip()
    return result
