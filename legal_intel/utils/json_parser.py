"""Strict JSON parsing for model output.

Model responses are accepted only when they parse as JSON of the expected
shape once surrounding markdown code fences are removed. Anything else raises
MalformedModelOutputError; there is no best-effort repair.
"""

import json
from typing import Any, Dict, List, Type, Union

from legal_intel.core.exceptions import MalformedModelOutputError
from legal_intel.utils.logging import get_logger

LOGGER = get_logger(__name__)


def strip_code_fences(text: str) -> str:
    """Remove a wrapping ```json ... ``` (or bare ```) block."""
    cleaned = text.strip()
    if cleaned.startswith("```json"):
        cleaned = cleaned[7:]
    elif cleaned.startswith("```"):
        cleaned = cleaned[3:]
    if cleaned.endswith("```"):
        cleaned = cleaned[:-3]
    return cleaned.strip()


def parse_model_json(
    text: str,
    expect: Union[Type[dict], Type[list]] = dict,
) -> Union[Dict[str, Any], List[Any]]:
    """Parse model output as JSON of the expected top-level type.

    Args:
        text: Raw model output
        expect: ``dict`` or ``list``

    Returns:
        Parsed JSON value

    Raises:
        MalformedModelOutputError: If the text is empty, not JSON, or the wrong shape
    """
    if not text or not text.strip():
        raise MalformedModelOutputError("Model returned an empty response")

    cleaned = strip_code_fences(text)
    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError as e:
        LOGGER.warning(f"Model output is not valid JSON: {e}")
        raise MalformedModelOutputError(f"Model output is not valid JSON: {e}", original_error=e) from e

    if not isinstance(parsed, expect):
        raise MalformedModelOutputError(
            f"Expected a JSON {expect.__name__}, got {type(parsed).__name__}"
        )
    return parsed


def parse_findings_payload(text: str) -> List[Any]:
    """Parse an extraction response into a list of raw finding objects.

    Accepts a bare JSON array or an object wrapping the array under
    ``findings`` (models asked for ``json_object`` output often do this).
    """
    if not text or not text.strip():
        raise MalformedModelOutputError("Model returned an empty response")

    cleaned = strip_code_fences(text)
    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise MalformedModelOutputError(f"Model output is not valid JSON: {e}", original_error=e) from e

    if isinstance(parsed, list):
        return parsed
    if isinstance(parsed, dict) and isinstance(parsed.get("findings"), list):
        return parsed["findings"]
    raise MalformedModelOutputError("Expected a JSON array of findings")
