"""Robust JSON extraction from LLM responses.

All LLM adapters share this 4-stage fallback:
  1. Strip markdown code fences (```json ... ```)
  2. Direct JSON parse
  3. Find outermost { } boundaries (handles leading/trailing noise)
  4. Truncation repair (close open brackets/braces)
"""

from __future__ import annotations

import json


def extract_json(text: str) -> dict:
    """Extract a JSON object from an LLM response string.

    Raises json.JSONDecodeError if no JSON object can be extracted.
    """
    text = text.strip()

    if text.startswith("```"):
        lines = text.split("\n")
        end = -1 if lines[-1].strip() == "```" else len(lines)
        text = "\n".join(lines[1:end]).strip()

    candidates: list[str] = [text]
    start = text.find("{")
    end = text.rfind("}")
    if start != -1 and end > start:
        candidates.append(text[start : end + 1])
    if start != -1:
        # Truncated output: close whatever is still open
        fragment = text[start:].rstrip().rstrip(",")
        fragment += "]" * max(0, fragment.count("[") - fragment.count("]"))
        fragment += "}" * max(0, fragment.count("{") - fragment.count("}"))
        candidates.append(fragment)

    for candidate in candidates:
        try:
            parsed = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(parsed, dict):
            return parsed

    raise json.JSONDecodeError("Could not extract JSON from LLM response", text, 0)
