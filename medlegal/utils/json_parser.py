import json
import re
from typing import Any, Dict, List, Union

from medlegal.utils.logging import get_logger

LOGGER = get_logger(__name__)

_FENCE_PATTERN = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)
_TRAILING_COMMA_PATTERN = re.compile(r",\s*([}\]])")


def strip_code_fences(text: str) -> str:
    """Remove a surrounding markdown code fence, if any."""
    return _FENCE_PATTERN.sub("", text.strip()).strip()


def parse_json_safely(text: str) -> Union[Dict[str, Any], List[Any], None]:
    """Parse JSON from model output, handling common formatting issues.

    Handles:
    - Markdown code blocks (```json ... ```)
    - Leading prose before the JSON payload
    - Trailing commas before a closing brace or bracket

    Args:
        text: The text containing JSON

    Returns:
        Parsed JSON value or None if parsing fails
    """
    if not text:
        return None

    cleaned_text = strip_code_fences(text)

    try:
        return json.loads(cleaned_text)
    except json.JSONDecodeError as e:
        LOGGER.warning(f"Initial JSON parse failed: {e}, attempting repairs...")

    repaired = _TRAILING_COMMA_PATTERN.sub(r"\1", cleaned_text)
    try:
        return json.loads(repaired)
    except json.JSONDecodeError:
        pass

    # Fall back to the outermost object or array, whichever opens first
    spans = []
    for opener, closer in (("{", "}"), ("[", "]")):
        start = repaired.find(opener)
        end = repaired.rfind(closer)
        if start != -1 and end > start:
            spans.append((start, end))

    for start, end in sorted(spans):
        try:
            return json.loads(repaired[start:end + 1])
        except json.JSONDecodeError:
            continue

    LOGGER.error("Failed to parse JSON from model output", extra={"preview": cleaned_text[:200]})
    return None
