"""Analysis contract helpers (v1).

This module documents the response shape the web client depends on and holds the
pure pieces of the pipeline that do not touch the network:

- reply-text normalization (code-fence stripping),
- JSON parsing of the model reply,
- AnalysisResult schema validation,
- the constant fallback result.

It is intentionally stdlib-only so it can be imported anywhere without heavy deps.
"""

from __future__ import annotations

import copy
import json
import logging
import math
import re
from typing import Any, Callable, List, Literal, Optional, TypedDict

from agriscout.shared.errors import ResponseParseError, SchemaValidationError

LOGGER = logging.getLogger(__name__)

MIN_RECOMMENDATIONS = 3
CONFIDENCE_RANGE = (0.0, 100.0)


class Identification(TypedDict):
    commonName: str
    scientificName: str
    confidence: float


class Recommendations(TypedDict):
    nonChemical: List[str]
    chemical: List[str]


class AnalysisResult(TypedDict):
    identification: Identification
    description: str
    recommendations: Recommendations


class AnalysisSuccess(TypedDict):
    success: Literal[True]
    result: AnalysisResult
    timestamp: str


class AnalysisFailure(TypedDict, total=False):
    error: str
    code: str
    details: str
    fallback: AnalysisResult


FALLBACK_RESULT: AnalysisResult = {
    "identification": {
        "commonName": "Unknown Agricultural Issue",
        "scientificName": "Analysis unavailable",
        "confidence": 0,
    },
    "description": (
        "Unable to complete AI analysis at this time. Please try again later or consult "
        "with a local agricultural extension office for identification assistance."
    ),
    "recommendations": {
        "nonChemical": [
            "Document the issue with additional photos from different angles",
            "Consult with local agricultural extension services",
            "Monitor the affected area for changes or spread",
        ],
        "chemical": [
            "Consult with a certified crop advisor before applying treatments",
            "Consider soil testing if the issue appears to be nutrient-related",
            "Follow all label instructions for any approved treatments",
        ],
    },
}


def fallback_result() -> AnalysisResult:
    """Return the placeholder result attached to every server-side failure.

    A deep copy is returned so callers can never mutate the module constant.
    """

    return copy.deepcopy(FALLBACK_RESULT)


# Ordered text repairs applied to the model reply before parsing. Each rule is a
# pure str -> str function; add new ones here without touching validation.
_FENCE_RE = re.compile(r"```[A-Za-z0-9_+-]*[ \t]*\r?\n?")

TextRepair = Callable[[str], str]

TEXT_REPAIRS: List[TextRepair] = [
    lambda text: text.strip(),
    lambda text: _FENCE_RE.sub("", text),
    lambda text: text.strip(),
]


def strip_code_fences(text: str) -> str:
    """Remove markdown code-fence markers (``` or ```json) wherever they appear."""

    for repair in TEXT_REPAIRS:
        text = repair(text)
    return text


def parse_result_text(raw_text: str) -> Any:
    """Normalize + parse the model reply. Raises ResponseParseError on bad JSON.

    The raw (pre-clean) text is logged with the parse error; neither is exposed
    through the raised exception.
    """

    cleaned = strip_code_fences(raw_text)
    try:
        return json.loads(cleaned)
    except ValueError as exc:
        LOGGER.error("JSON parse error: %s", exc)
        LOGGER.error("Raw AI response: %s", raw_text)
        raise ResponseParseError() from exc


def _require_dict(value: Any, name: str) -> dict:
    if not isinstance(value, dict):
        raise SchemaValidationError(f"{name} must be an object")
    return value


def _require_str(obj: dict, key: str, *, non_empty: bool = False) -> str:
    value = obj.get(key)
    if not isinstance(value, str):
        raise SchemaValidationError(f"{key} must be a string")
    if non_empty and not value.strip():
        raise SchemaValidationError(f"{key} must not be empty")
    return value


def _require_str_list(obj: dict, key: str) -> List[str]:
    value = obj.get(key)
    if not isinstance(value, list):
        raise SchemaValidationError(f"recommendations.{key} must be an array")
    if len(value) < MIN_RECOMMENDATIONS:
        raise SchemaValidationError(
            f"recommendations.{key} must contain at least {MIN_RECOMMENDATIONS} items"
        )
    if not all(isinstance(item, str) for item in value):
        raise SchemaValidationError(f"recommendations.{key} items must be strings")
    return value


def _require_confidence(obj: dict) -> None:
    value = obj.get("confidence")
    # bool is an int subclass; JSON true/false is not a confidence.
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise SchemaValidationError("identification.confidence must be a number")
    low, high = CONFIDENCE_RANGE
    if not math.isfinite(value) or not low <= value <= high:
        raise SchemaValidationError("identification.confidence must be within 0-100")


def validate_analysis_result(raw: Any) -> AnalysisResult:
    """Check `raw` against the AnalysisResult schema, all-or-nothing.

    Returns `raw` itself (unmodified, extra keys preserved) when valid; raises
    SchemaValidationError on the first violation.
    """

    result = _require_dict(raw, "AnalysisResult")

    identification = _require_dict(result.get("identification"), "identification")
    _require_str(identification, "commonName")
    _require_str(identification, "scientificName")
    _require_confidence(identification)

    _require_str(result, "description", non_empty=True)

    recommendations = _require_dict(result.get("recommendations"), "recommendations")
    _require_str_list(recommendations, "nonChemical")
    _require_str_list(recommendations, "chemical")

    return result  # type: ignore[return-value]


def is_valid_analysis_result(raw: Any) -> bool:
    try:
        validate_analysis_result(raw)
    except SchemaValidationError:
        return False
    return True


def failure_body(
    message: str,
    code: str,
    *,
    details: Optional[str] = None,
    fallback: Optional[AnalysisResult] = None,
) -> AnalysisFailure:
    body: AnalysisFailure = {"error": message, "code": code}
    if details:
        body["details"] = details
    if fallback is not None:
        body["fallback"] = fallback
    return body
