"""Provider-agnostic prompt templates for screen-frame analysis."""

from __future__ import annotations

_USE_CASE_HINTS = {
    "ocr": "Focus on reading every piece of visible text exactly as written.",
    "document": "Treat the frame as a document: capture headings, paragraphs and tables.",
    "ui": "Focus on interactive controls: buttons, inputs, dropdowns, menus and windows.",
    "scene": "Describe the overall layout and what the user is doing.",
    "object": "List the distinct on-screen objects and where they are.",
}


def build_analysis_prompt(use_case: str | None = None, custom_prompt: str = "") -> str:
    """Build the structured screenshot analysis prompt."""
    if custom_prompt:
        return custom_prompt

    hint = _USE_CASE_HINTS.get(use_case or "", "")
    hint_part = f"\n{hint}\n" if hint else ""

    return f"""Analyze this screenshot from a recorded desktop workflow. Identify UI elements, the cursor and any user action in progress.
{hint_part}
Respond in JSON only:
{{
  "description": "<1-2 sentence description of the screen>",
  "elements": [
    {{"type": "<button|input|dropdown|window|menu|text|image|other>",
      "bounds": {{"x": <px>, "y": <px>, "width": <px>, "height": <px>}},
      "text": "<label or content>",
      "confidence": <0.0-1.0>}}
  ],
  "cursor": {{"x": <px>, "y": <px>, "visible": <true|false>, "type": "<arrow|hand|text|wait>"}},
  "text": ["<visible text strings>"],
  "actions": [
    {{"type": "<click|type|scroll|drag|key_press>", "target": "<element text>", "value": "<typed text or key>", "confidence": <0.0-1.0>}}
  ]
}}"""
