"""Helpers for pulling JSON objects out of free-form model text."""

import json
import re
from typing import Any, Dict, Iterator, Tuple

CODE_FENCE_RE = re.compile(r"```(?:json|JSON)?\s*\n?(.*?)```", re.DOTALL)


def strip_code_fences(text: str) -> str:
    """Return the body of the first fenced block, or the text unchanged."""
    match = CODE_FENCE_RE.search(text)
    if match:
        return match.group(1).strip()
    return text.replace("```", "").strip()


def _balanced_objects(text: str) -> Iterator[Tuple[int, int]]:
    """Yield (start, end) spans of balanced ``{...}`` groups, honoring strings."""
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        end = -1
        for i in range(start, len(text)):
            ch = text[i]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
                continue
            if ch == '"':
                in_string = True
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    end = i + 1
                    break
        if end == -1:
            return
        yield start, end
        start = text.find("{", start + 1)


def extract_json_object(text: str) -> Dict[str, Any]:
    """Locate and load the first balanced JSON object in ``text``.

    Raises ``ValueError`` when no object can be loaded.
    """
    if not text or not text.strip():
        raise ValueError("Empty model output")

    body = strip_code_fences(text)
    for start, end in _balanced_objects(body):
        try:
            value = json.loads(body[start:end])
        except json.JSONDecodeError:
            continue
        if isinstance(value, dict):
            return value
    raise ValueError("No JSON object found in model output")
