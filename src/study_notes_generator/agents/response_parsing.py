"""Shared helpers for turning service text into validated payloads."""

from __future__ import annotations

import re
from typing import TypeVar

from pydantic import BaseModel, ValidationError

from ..errors import ResponseParseError

_FENCE_OPEN_RE = re.compile(r"^\s*```(?:json|markdown)?\s*\n?", re.IGNORECASE)
_FENCE_CLOSE_RE = re.compile(r"\n?\s*```\s*$")

M = TypeVar("M", bound=BaseModel)


def strip_code_fence(text: str) -> str:
    """Remove one surrounding markdown fence, if present."""
    text = _FENCE_OPEN_RE.sub("", text, count=1)
    text = _FENCE_CLOSE_RE.sub("", text, count=1)
    return text.strip()


def parse_payload(text: str, model_cls: type[M], what: str) -> M:
    """Validate *text* as a JSON ``model_cls``; any mismatch is fatal.

    A leading or trailing chatter line around a single JSON object is
    tolerated by slicing from the first ``{`` to the last ``}``.
    """
    body = strip_code_fence(text)
    if "{" in body:
        body = body[body.find("{"):body.rfind("}") + 1]
    try:
        return model_cls.model_validate_json(body)
    except ValidationError as e:
        raise ResponseParseError(
            f"Malformed {what} response: {e.error_count()} error(s): {e.errors()[0]['msg']}",
            raw_text=text,
        ) from e
