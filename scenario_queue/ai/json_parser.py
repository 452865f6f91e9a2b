"""Lenient JSON parsing for LLM completions."""

from __future__ import annotations

import json
import re
from typing import Any

_TRAILING_COMMA_RE = re.compile(r",\s*([}\]])")
_FENCE_RE = re.compile(r"^```[a-zA-Z0-9_-]*\s*\n?|\n?```\s*$")


def strip_json_fences(raw: str) -> str:
  """Remove markdown code fences that models sometimes wrap around JSON."""
  return _FENCE_RE.sub("", raw.strip()).strip()


def parse_json_object(raw: str) -> dict[str, Any]:
  """Parse a JSON object, recovering from surrounding prose and trailing commas."""
  text = strip_json_fences(raw)

  # Prefer strict parsing so valid JSON is preserved without mutation.
  try:
    return _require_object(json.loads(text))
  except json.JSONDecodeError as exc:
    last_error = exc

  candidate = _extract_object(text)
  if candidate is None:
    raise last_error

  try:
    return _require_object(json.loads(candidate))
  except json.JSONDecodeError:
    pass

  # Trailing commas are the most common defect left in model output.
  return _require_object(json.loads(_TRAILING_COMMA_RE.sub(r"\1", candidate)))


def _require_object(value: Any) -> dict[str, Any]:
  if not isinstance(value, dict):
    raise json.JSONDecodeError("Expected a JSON object", json.dumps(value)[:80], 0)
  return value


def _extract_object(raw: str) -> str | None:
  """Locate the first balanced {...} block while honoring string escapes."""
  start_index: int | None = None
  depth = 0
  in_string = False
  escape = False

  for index, char in enumerate(raw):
    if start_index is None:
      if char == "{":
        start_index = index
        depth = 1
      continue

    if in_string:
      if escape:
        escape = False
      elif char == "\\":
        escape = True
      elif char == '"':
        in_string = False
      continue

    if char == '"':
      in_string = True
    elif char == "{":
      depth += 1
    elif char == "}":
      depth -= 1
      if depth == 0:
        return raw[start_index : index + 1]

  return None
