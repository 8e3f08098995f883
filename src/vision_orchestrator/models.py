"""Pydantic models for provider output and per-frame analysis results."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ElementType(str, Enum):
    BUTTON = "button"
    INPUT = "input"
    DROPDOWN = "dropdown"
    WINDOW = "window"
    MENU = "menu"
    TEXT = "text"
    IMAGE = "image"
    OTHER = "other"


class CursorType(str, Enum):
    ARROW = "arrow"
    HAND = "hand"
    TEXT = "text"
    WAIT = "wait"


class ActionType(str, Enum):
    CLICK = "click"
    TYPE = "type"
    SCROLL = "scroll"
    DRAG = "drag"
    KEY_PRESS = "key_press"


class Bounds(BaseModel):
    x: float = 0
    y: float = 0
    width: float = 0
    height: float = 0


class UIElement(BaseModel):
    type: ElementType = ElementType.OTHER
    bounds: Bounds = Field(default_factory=Bounds)
    text: str = ""
    confidence: float = 0.0


class CursorInfo(BaseModel):
    x: float = 0
    y: float = 0
    visible: bool = False
    type: CursorType = CursorType.ARROW


class DetectedAction(BaseModel):
    type: ActionType
    target: str = ""
    value: str = ""
    confidence: float = 0.0


class ProviderResult(BaseModel):
    """Uniform answer every adapter returns."""

    description: str = ""
    elements: list[UIElement] = Field(default_factory=list)
    cursor: CursorInfo | None = None
    text: list[str] = Field(default_factory=list)
    actions: list[DetectedAction] = Field(default_factory=list)
    confidence: float = 0.0
    model: str = ""
    metadata: dict[str, Any] = Field(default_factory=dict)


class FrameAnalysisResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    frame_index: int
    timestamp: float
    description: str = ""
    elements: list[UIElement] = Field(default_factory=list)
    cursor: CursorInfo | None = None
    text: list[str] = Field(default_factory=list)
    actions: list[DetectedAction] = Field(default_factory=list)
    provider: str
    confidence: float = 0.0
    processing_time_ms: float = 0.0
    used_free_provider: bool = False
    is_fallback: bool = False

    @classmethod
    def fallback(
        cls, frame_index: int, timestamp: float, processing_time_ms: float = 0.0
    ) -> FrameAnalysisResult:
        """Empty placeholder for a frame no provider could analyze."""
        return cls(
            frame_index=frame_index,
            timestamp=timestamp,
            provider="fallback",
            confidence=0.0,
            processing_time_ms=processing_time_ms,
            is_fallback=True,
        )

    @classmethod
    def from_provider(
        cls,
        result: ProviderResult,
        *,
        frame_index: int,
        timestamp: float,
        provider: str,
        processing_time_ms: float,
        used_free_provider: bool,
    ) -> FrameAnalysisResult:
        return cls(
            frame_index=frame_index,
            timestamp=timestamp,
            description=result.description,
            elements=result.elements,
            cursor=result.cursor,
            text=result.text,
            actions=result.actions,
            provider=provider,
            confidence=result.confidence,
            processing_time_ms=processing_time_ms,
            used_free_provider=used_free_provider,
        )
