"""Prompt template for the crop-issue analysis call."""

from __future__ import annotations

_ANALYSIS_PROMPT_HEAD = """You are an expert agronomist specializing in the U.S. Corn Belt. Analyze the provided image and context to identify weeds, pests, or diseases.

CRITICAL: You must respond with ONLY a valid JSON object. No additional text, explanations, or formatting outside the JSON.

Required JSON structure:
{
    "identification": {
        "commonName": "string",
        "scientificName": "string",
        "confidence": number (0-100)
    },
    "description": "string (one paragraph describing characteristics and crop impact)",
    "recommendations": {
        "nonChemical": ["string", "string", "string"],
        "chemical": ["string", "string", "string"]
    }
}

Context Information: """

_ANALYSIS_PROMPT_TAIL = """

Analyze the image and provide identification with management recommendations. Focus on common agricultural issues in corn and soybean fields."""


def build_prompt(context: str) -> str:
    # `context` is concatenated as-is; the template relies on instructions, not
    # structure, to keep the model on-format.
    return _ANALYSIS_PROMPT_HEAD + context + _ANALYSIS_PROMPT_TAIL
