"""
Best-effort extraction of a JSON object from free-form model output.

Models wrap their answer in prose or ```json fences; the first balanced
{...} substring that parses as an object is returned. Nothing here raises.
"""

import json
import logging
from typing import Dict, Any, Iterator, Optional

logger = logging.getLogger(__name__)


def _balanced_spans(text: str) -> Iterator[str]:
    """Yield brace-balanced substrings in order of their opening brace."""
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for i in range(start, len(text)):
            ch = text[i]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
            elif ch == '"':
                in_string = True
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    yield text[start:i + 1]
                    break
        start = text.find("{", start + 1)


def extract_json_object(text: Optional[str]) -> Optional[Dict[str, Any]]:
    """
    Return the first JSON object embedded in text, or None.

    Args:
        text: Raw model response.

    Returns:
        Parsed dict, or None if no balanced {...} span parses as an object.
    """
    if not text:
        return None

    for span in _balanced_spans(text):
        try:
            value = json.loads(span)
        except ValueError:
            continue
        if isinstance(value, dict):
            return value

    logger.debug(f"No JSON object found in model output: {text[:120]!r}")
    return None
