"""Error taxonomy for the analysis pipeline.

Every failure the pipeline can produce is one of these classes. The service turns
them into a JSON error body: {error, code, details?, fallback?}.

Caller-facing text lives on the class. Diagnostic detail (raw provider bodies, parse
errors) goes to the server log and never into `message`/`details`.
"""

from __future__ import annotations

from typing import Optional


class AnalysisError(Exception):
    code: str = "INTERNAL_ERROR"
    status_code: int = 500
    message: str = "Internal server error during analysis"
    with_fallback: bool = True

    def __init__(self, details: Optional[str] = None) -> None:
        super().__init__(details or self.message)
        self.details = details


# Input errors: 400, no fallback attached.


class MissingFieldError(AnalysisError):
    code = "MISSING_FIELDS"
    status_code = 400
    message = "Missing required fields: imageData and context"
    with_fallback = False


class InvalidImageFormatError(AnalysisError):
    code = "INVALID_IMAGE_FORMAT"
    status_code = 400
    message = "Invalid image data format"
    with_fallback = False


class PayloadTooLargeError(AnalysisError):
    code = "PAYLOAD_TOO_LARGE"
    status_code = 413
    message = "Request body too large"
    with_fallback = False

    def __init__(self, max_bytes: int) -> None:
        super().__init__(f"Maximum size is {max_bytes} bytes")
        self.max_bytes = max_bytes


# Server-side errors: 500, fallback attached.


class ConfigurationError(AnalysisError):
    code = "CONFIGURATION_ERROR"
    message = "Gemini API key not configured"


class ProviderError(AnalysisError):
    code = "PROVIDER_ERROR"
    message = "AI analysis failed"

    def __init__(self, status_code: Optional[int] = None, reason: str = "") -> None:
        if status_code is not None:
            details = f"API returned {status_code}"
        else:
            details = f"API request failed: {reason}" if reason else "API request failed"
        super().__init__(details)
        self.provider_status = status_code


class MalformedEnvelopeError(AnalysisError):
    code = "MALFORMED_ENVELOPE"
    message = "Invalid API response structure"


class ResponseParseError(AnalysisError):
    code = "RESPONSE_PARSE_ERROR"
    message = "Failed to parse AI response"

    def __init__(self) -> None:
        super().__init__("AI returned invalid JSON format")


class SchemaValidationError(AnalysisError):
    code = "SCHEMA_VALIDATION_ERROR"
    message = "AI returned incomplete analysis"

    def __init__(self, reason: str) -> None:
        # `reason` is for logs only; the response body carries `message`.
        super().__init__(None)
        self.reason = reason

    def __str__(self) -> str:
        return self.reason


class InternalError(AnalysisError):
    code = "INTERNAL_ERROR"
    message = "Internal server error during analysis"
