"""Agri-Scout Analysis Service (v1 contract).

This FastAPI app exposes the crop-issue analysis endpoint used by the web client.

Flow for POST /api/analyze (strictly sequential, first failure wins):
  1) validate body {imageData, context}
  2) take the base64 payload out of the data URL
  3) build the agronomist prompt
  4) call Gemini generateContent (single attempt)
  5) strip code fences from the reply text
  6) parse JSON + validate the AnalysisResult schema

Success: {success: true, result, timestamp}
Failure: {error, code, details?, fallback?}; 400 for input errors (no fallback),
500 otherwise (constant fallback attached).

Run (from repo root):
  uvicorn agriscout.services.analyze_service_v1:app --host 0.0.0.0 --port 3000

Quick curl:
  curl -X POST http://127.0.0.1:3000/api/analyze -H "Content-Type: application/json" \
    -d '{"imageData": "data:image/jpeg;base64,AAAA", "context": "corn leaves, yellow spots"}'
"""

from __future__ import annotations

import json
import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from agriscout.shared.analysis_contract_v1 import (
    AnalysisSuccess,
    failure_body,
    fallback_result,
    parse_result_text,
    validate_analysis_result,
)
from agriscout.shared.errors import (
    AnalysisError,
    InternalError,
    InvalidImageFormatError,
    MissingFieldError,
    PayloadTooLargeError,
    SchemaValidationError,
)
from agriscout.shared.gemini_gateway import (
    DEFAULT_API_BASE,
    DEFAULT_MODEL,
    DEFAULT_TIMEOUT_S,
    GeminiConfig,
    GeminiGateway,
)
from agriscout.shared.prompts import build_prompt

APP_VERSION = "1.0"
DEFAULT_MAX_BODY_BYTES = 10 * 1024 * 1024

LOGGER = logging.getLogger(__name__)


def _utc_timestamp() -> str:
    # Millisecond precision with a Z suffix, e.g. 2024-05-01T12:00:00.123Z
    now = datetime.now(timezone.utc)
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"


def _error(exc: AnalysisError) -> JSONResponse:
    fallback = fallback_result() if exc.with_fallback else None
    payload = failure_body(exc.message, exc.code, details=exc.details, fallback=fallback)
    return JSONResponse(status_code=exc.status_code, content=payload)


def _get_timeout_s() -> float:
    raw = os.getenv("GEMINI_TIMEOUT_S")
    if not raw:
        return DEFAULT_TIMEOUT_S
    try:
        timeout_s = float(raw)
    except ValueError:
        LOGGER.warning("Ignoring invalid GEMINI_TIMEOUT_S=%r", raw)
        return DEFAULT_TIMEOUT_S
    return timeout_s if timeout_s > 0 else DEFAULT_TIMEOUT_S


def _get_max_body_bytes() -> int:
    try:
        return int(os.getenv("MAX_BODY_BYTES", str(DEFAULT_MAX_BODY_BYTES)))
    except ValueError:
        return DEFAULT_MAX_BODY_BYTES


def _get_allowed_origins() -> List[str]:
    raw = os.getenv("ALLOWED_ORIGINS", "").strip()
    if not raw:
        return ["*"]
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


def _gateway_config_from_env() -> GeminiConfig:
    return GeminiConfig(
        api_key=os.getenv("GEMINI_API_KEY") or None,
        model=os.getenv("GEMINI_MODEL", DEFAULT_MODEL),
        api_base=os.getenv("GEMINI_API_BASE", DEFAULT_API_BASE),
        timeout_s=_get_timeout_s(),
    )


def _get_gateway() -> GeminiGateway:
    return GeminiGateway(_gateway_config_from_env())


def _validate_request(body: Any) -> tuple[str, str]:
    """Return (imageData, context) or raise MissingFieldError."""

    if not isinstance(body, dict):
        raise MissingFieldError()
    image_data = body.get("imageData")
    context = body.get("context")
    for value in (image_data, context):
        if not isinstance(value, str) or not value.strip():
            raise MissingFieldError()
    return image_data, context


def _decode_image_data(image_data: str) -> str:
    """Split a data URL on the first comma and return the base64 segment.

    The payload is not checked for valid base64; Gemini rejects bad images itself.
    """

    _header, sep, payload = image_data.partition(",")
    if not sep or not payload.strip():
        raise InvalidImageFormatError()
    return payload.strip()


async def _run_pipeline(body: Any, gateway: GeminiGateway) -> AnalysisSuccess:
    image_data, context = _validate_request(body)
    image_b64 = _decode_image_data(image_data)
    prompt = build_prompt(context)

    raw_text = await gateway.generate(prompt, image_b64)

    parsed = parse_result_text(raw_text)
    try:
        result = validate_analysis_result(parsed)
    except SchemaValidationError as exc:
        LOGGER.error("Invalid result structure (%s): %s", exc.reason, parsed)
        raise

    timestamp = _utc_timestamp()
    # Never log image data.
    LOGGER.info(
        "Successful analysis: identification=%s timestamp=%s",
        result["identification"],
        timestamp,
    )
    return {"success": True, "result": result, "timestamp": timestamp}


async def _read_json_body(request: Request) -> Optional[Any]:
    """Read the body up to the size limit and parse it as JSON.

    Chunked uploads carry no Content-Length, so the limit is enforced on the
    bytes actually received.
    """

    max_bytes = _get_max_body_bytes()
    chunks: List[bytes] = []
    received = 0
    async for chunk in request.stream():
        received += len(chunk)
        if received > max_bytes:
            raise PayloadTooLargeError(max_bytes)
        chunks.append(chunk)
    try:
        return json.loads(b"".join(chunks))
    except ValueError:
        # Malformed JSON is treated as a body with no fields.
        return None


app = FastAPI(title="Agri-Scout Analysis Service", version=APP_VERSION)


@app.middleware("http")
async def limit_body_size(request: Request, call_next):
    content_length = request.headers.get("content-length")
    if content_length and content_length.isdigit():
        max_bytes = _get_max_body_bytes()
        if int(content_length) > max_bytes:
            return _error(PayloadTooLargeError(max_bytes))
    return await call_next(request)


@app.middleware("http")
async def add_security_headers(request: Request, call_next):
    response = await call_next(request)
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["Cross-Origin-Resource-Policy"] = "same-origin"
    # Analysis results are per-request; proxies must not cache them.
    response.headers["Cache-Control"] = "no-store, no-cache, must-revalidate"
    return response


# Added last so it wraps every other middleware, early 413s included.
_origins = _get_allowed_origins()
app.add_middleware(
    CORSMiddleware,
    allow_origins=_origins,
    # Browsers refuse credentials with a wildcard origin.
    allow_credentials=_origins != ["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(404)
async def not_found_handler(request: Request, __):
    return JSONResponse(
        status_code=404,
        content={"detail": "Not Found", "path": request.url.path},
    )


@app.get("/api/health")
def health() -> Dict[str, Any]:
    return {
        "status": "OK",
        "timestamp": _utc_timestamp(),
        "geminiConfigured": _gateway_config_from_env().configured,
    }


@app.post("/api/analyze")
async def analyze(request: Request) -> JSONResponse:
    try:
        body = await _read_json_body(request)
        success = await _run_pipeline(body, _get_gateway())
        # Rendering can still fail (e.g. NaN in an extra key), so keep it in the try.
        return JSONResponse(status_code=200, content=success)
    except AnalysisError as exc:
        return _error(exc)
    except Exception:  # noqa: BLE001 - every request must end with a fallback body
        LOGGER.exception("Analysis endpoint error")
        return _error(InternalError())


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", "3000")))
