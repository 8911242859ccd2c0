"""Gemini `generateContent` gateway.

One outbound call per analysis request, no retries. Failures are mapped onto the
pipeline error taxonomy:

- no API key                       -> ConfigurationError (no network call)
- non-2xx status / transport error -> ProviderError
- 2xx without candidate text       -> MalformedEnvelopeError
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx

from agriscout.shared.errors import ConfigurationError, MalformedEnvelopeError, ProviderError

LOGGER = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-2.0-flash-exp"
DEFAULT_API_BASE = "https://generativelanguage.googleapis.com/v1beta"
DEFAULT_TIMEOUT_S = 30.0

# The original image encoding is not inspected; Gemini accepts a generic type.
IMAGE_MIME_TYPE = "image/jpeg"

GENERATION_CONFIG: Dict[str, Any] = {
    "temperature": 0.1,
    "topK": 32,
    "topP": 1,
    "maxOutputTokens": 2048,
}

SAFETY_SETTINGS: List[Dict[str, str]] = [
    {"category": "HARM_CATEGORY_HARASSMENT", "threshold": "BLOCK_MEDIUM_AND_ABOVE"},
    {"category": "HARM_CATEGORY_HATE_SPEECH", "threshold": "BLOCK_MEDIUM_AND_ABOVE"},
]

# Provider bodies can be large; logs keep the head only.
_LOG_BODY_LIMIT = 2000


@dataclass(frozen=True)
class GeminiConfig:
    api_key: Optional[str]
    model: str = DEFAULT_MODEL
    api_base: str = DEFAULT_API_BASE
    timeout_s: float = DEFAULT_TIMEOUT_S

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    @property
    def endpoint(self) -> str:
        return f"{self.api_base.rstrip('/')}/models/{self.model}:generateContent"


def build_request_payload(prompt: str, image_b64: str) -> Dict[str, Any]:
    return {
        "contents": [
            {
                "parts": [
                    {"text": prompt},
                    {"inline_data": {"mime_type": IMAGE_MIME_TYPE, "data": image_b64}},
                ]
            }
        ],
        "generationConfig": dict(GENERATION_CONFIG),
        "safetySettings": [dict(s) for s in SAFETY_SETTINGS],
    }


def extract_candidate_text(resp_json: Any) -> str:
    """Return candidates[0].content.parts[0].text or raise MalformedEnvelopeError."""

    try:
        text = resp_json["candidates"][0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError) as exc:
        LOGGER.error("Unexpected API response structure: %s", resp_json)
        raise MalformedEnvelopeError() from exc
    if not isinstance(text, str):
        LOGGER.error("Unexpected API response structure: %s", resp_json)
        raise MalformedEnvelopeError()
    return text


class GeminiGateway:
    def __init__(self, config: GeminiConfig) -> None:
        self.config = config

    async def generate(self, prompt: str, image_b64: str) -> str:
        """Send prompt + inline image, return the reply text from the envelope."""

        if not self.config.configured:
            raise ConfigurationError()

        headers = {
            "Content-Type": "application/json",
            "x-goog-api-key": str(self.config.api_key),
        }
        payload = build_request_payload(prompt, image_b64)

        try:
            async with httpx.AsyncClient(timeout=httpx.Timeout(self.config.timeout_s)) as client:
                resp = await client.post(self.config.endpoint, headers=headers, json=payload)
                resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            status = int(exc.response.status_code)
            body = (exc.response.text or "")[:_LOG_BODY_LIMIT]
            LOGGER.error("Gemini API error: status=%s body=%s", status, body)
            raise ProviderError(status) from exc
        except httpx.TimeoutException as exc:
            LOGGER.error("Gemini API timed out after %.1fs", self.config.timeout_s)
            raise ProviderError(reason="timeout") from exc
        except httpx.RequestError as exc:
            LOGGER.error("Gemini API request failed: %s", exc.__class__.__name__)
            raise ProviderError(reason=exc.__class__.__name__) from exc

        try:
            resp_json = resp.json()
        except ValueError as exc:
            LOGGER.error("Gemini API returned non-JSON body: %s", resp.text[:_LOG_BODY_LIMIT])
            raise MalformedEnvelopeError() from exc

        return extract_candidate_text(resp_json)
