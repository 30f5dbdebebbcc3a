"""Helpers for turning raw LLM text into JSON objects.

Models wrap JSON in Markdown fences or add a sentence before it; everything
that consumes structured output goes through ``load_json_object`` so callers
receive either a dict or a ``ResponseContractError``.
"""

from __future__ import annotations

import json
import re
from typing import Any

_FENCE = re.compile(r"^\s*```(?:json)?|```\s*$", re.IGNORECASE)


class ResponseContractError(RuntimeError):
    """Raised when the LLM response cannot be read as a JSON object."""


def load_json_object(payload: str | None) -> dict[str, Any]:
    cleaned = json_span(payload or "")
    if not cleaned:
        raise ResponseContractError("LLM returned an empty response.")
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        raise ResponseContractError(f"LLM returned invalid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise ResponseContractError(
            f"LLM returned JSON {type(data).__name__}, expected an object."
        )
    return data


def json_span(payload: str) -> str:
    """Text between the first ``{`` and the last ``}`` once code fences are removed."""

    unfenced = _FENCE.sub("", payload).strip()
    start, end = unfenced.find("{"), unfenced.rfind("}")
    if start == -1 or end <= start:
        return unfenced
    return unfenced[start : end + 1]


__all__ = ["ResponseContractError", "json_span", "load_json_object"]
