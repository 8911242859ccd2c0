from __future__ import annotations

import copy
import json

import pytest

from agriscout.shared import analysis_contract_v1 as contract
from agriscout.shared.errors import ResponseParseError, SchemaValidationError


def _valid_result() -> dict:
    return {
        "identification": {
            "commonName": "Gray Leaf Spot",
            "scientificName": "Cercospora zeae-maydis",
            "confidence": 82,
        },
        "description": "Rectangular gray lesions bounded by leaf veins.",
        "recommendations": {
            "nonChemical": ["Rotate crops", "Till residue", "Plant resistant hybrids"],
            "chemical": ["Strobilurin at VT", "Triazole mix", "Scout before spraying"],
        },
    }


def test_strip_code_fences_with_and_without_language_tag():
    body = json.dumps(_valid_result())

    assert contract.strip_code_fences(f"```json\n{body}\n```") == body
    assert contract.strip_code_fences(f"```\n{body}\n```") == body
    assert contract.strip_code_fences(f"  \n```JSON\n{body}```  \n") == body
    assert contract.strip_code_fences(body) == body


def test_fenced_and_bare_text_parse_identically():
    body = json.dumps(_valid_result(), indent=2)

    bare = contract.parse_result_text(body)
    fenced = contract.parse_result_text(f"```json\n{body}\n```")
    untagged = contract.parse_result_text(f"```\n{body}\n```")

    assert bare == fenced == untagged == _valid_result()


def test_parse_result_text_logs_raw_text_but_hides_it_from_error(caplog):
    raw = "Sure! Here is the analysis: not json at all"

    with caplog.at_level("ERROR"):
        with pytest.raises(ResponseParseError) as excinfo:
            contract.parse_result_text(raw)

    assert raw not in str(excinfo.value)
    assert excinfo.value.details == "AI returned invalid JSON format"
    assert any(raw in record.getMessage() for record in caplog.records)


def test_validate_analysis_result_returns_object_unmodified():
    raw = _valid_result()
    raw["extraNote"] = "kept as-is"
    snapshot = copy.deepcopy(raw)

    validated = contract.validate_analysis_result(raw)

    assert validated is raw
    assert validated == snapshot


def test_two_non_chemical_recommendations_are_rejected():
    raw = _valid_result()
    raw["recommendations"]["nonChemical"] = ["Rotate crops", "Till residue"]

    with pytest.raises(SchemaValidationError, match="nonChemical"):
        contract.validate_analysis_result(raw)


@pytest.mark.parametrize(
    "mutate",
    [
        lambda r: r.pop("identification"),
        lambda r: r.pop("description"),
        lambda r: r.pop("recommendations"),
        lambda r: r["identification"].pop("commonName"),
        lambda r: r["identification"].update(scientificName=None),
        lambda r: r["identification"].update(confidence="82"),
        lambda r: r["identification"].update(confidence=True),
        lambda r: r["identification"].update(confidence=140),
        lambda r: r["identification"].update(confidence=-1),
        lambda r: r.update(description="   "),
        lambda r: r["recommendations"].update(chemical="spray"),
        lambda r: r["recommendations"].update(chemical=["a", "b", 3]),
        lambda r: r["recommendations"].pop("chemical"),
    ],
)
def test_partial_or_mistyped_results_are_rejected_wholesale(mutate):
    raw = _valid_result()
    mutate(raw)

    assert contract.is_valid_analysis_result(raw) is False


def test_non_finite_confidence_is_rejected():
    raw = contract.parse_result_text(json.dumps(_valid_result()).replace("82", "NaN"))

    with pytest.raises(SchemaValidationError, match="confidence"):
        contract.validate_analysis_result(raw)


def test_non_object_values_are_rejected():
    for raw in ([], "text", 42, None):
        assert contract.is_valid_analysis_result(raw) is False


def test_fallback_result_is_schema_valid_and_constant():
    first = contract.fallback_result()
    second = contract.fallback_result()

    assert contract.is_valid_analysis_result(first)
    assert first == second == contract.FALLBACK_RESULT
    assert first["identification"]["confidence"] == 0


def test_fallback_result_cannot_mutate_module_constant():
    result = contract.fallback_result()
    result["recommendations"]["chemical"].clear()

    assert len(contract.FALLBACK_RESULT["recommendations"]["chemical"]) == 3


def test_failure_body_omits_empty_optional_fields():
    body = contract.failure_body("Invalid image data format", "INVALID_IMAGE_FORMAT")

    assert body == {"error": "Invalid image data format", "code": "INVALID_IMAGE_FORMAT"}

    with_extras = contract.failure_body(
        "AI analysis failed",
        "PROVIDER_ERROR",
        details="API returned 503",
        fallback=contract.fallback_result(),
    )
    assert with_extras["details"] == "API returned 503"
    assert contract.is_valid_analysis_result(with_extras["fallback"])
