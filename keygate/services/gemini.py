from __future__ import annotations

import base64
import json
import logging
from typing import Any

import httpx

from keygate.config import Settings
from keygate.services.types import (
    Description,
    Fatal,
    GeneratedImage,
    Outcome,
    Retryable,
    Success,
    UpstreamRequest,
)

logger = logging.getLogger("keygate.gemini")

DESCRIBE_PROMPT = (
    "Act as a professional photographer. Describe this image in vivid detail, "
    "focusing on the main subject, setting, lighting, composition, colors, and "
    "overall mood. The description should be suitable to be used as a prompt to "
    "recreate a similar image with an AI image generator."
)

NO_CANDIDATE_MESSAGE = "No response from the API. The request might have been blocked."
SAFETY_MESSAGE = (
    "Image generation failed. The prompt or image may have violated safety policies. "
    "Please adjust your input and try again."
)
NO_IMAGE_MESSAGE = (
    "API did not return an image. It might have been blocked due to safety "
    "settings or a prompt issue."
)
NO_DESCRIPTION_MESSAGE = "AI couldn't generate a description for this image."

RATE_LIMIT_MARKERS = ("resource_exhausted", "resource exhausted")


def is_rate_limited(status_code: int, error_text: str) -> bool:
    """Single rule for retryable failures: HTTP 429 or a resource-exhausted marker, any case."""
    if status_code == 429:
        return True
    lowered = (error_text or "").lower()
    return any(marker in lowered for marker in RATE_LIMIT_MARKERS)


def _error_details(resp: httpx.Response) -> tuple[str, str]:
    """Return (status, message) from a Google API error body, falling back to raw text."""
    try:
        data = resp.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return "", resp.text
    error = data.get("error") if isinstance(data, dict) else None
    if isinstance(error, dict):
        return str(error.get("status") or ""), str(error.get("message") or resp.text)
    return "", resp.text


class UnexpectedShape(ValueError):
    """A 2xx body that decodes as JSON but not as a generateContent response."""


def _expect(value: Any, kind: type, default: Any = None) -> Any:
    """Return ``value`` if it has type ``kind``, ``default`` if it is empty, else raise UnexpectedShape."""
    if value is None:
        return default
    if not isinstance(value, kind):
        raise UnexpectedShape(f"expected {kind.__name__}, got {type(value).__name__}")
    return value


def _first_candidate(data: dict) -> dict | None:
    candidates = _expect(data.get("candidates"), list, [])
    if not candidates:
        return None
    return _expect(candidates[0], dict, {})


def _candidate_parts(candidate: dict) -> list[dict]:
    content = _expect(candidate.get("content"), dict, {})
    return [_expect(p, dict, {}) for p in _expect(content.get("parts"), list, [])]


def _part_text(part: dict) -> str:
    return _expect(part.get("text"), str, "")


class GeminiClient:
    """Calls ``models/{model}:generateContent`` and classifies every result into an Outcome."""

    def __init__(self, http_client: httpx.AsyncClient, settings: Settings):
        self._http = http_client
        self._services = settings.services

    def _url(self, model: str) -> str:
        base = self._services.gemini_base_url.rstrip("/")
        return f"{base}/{self._services.api_version}/models/{model}:generateContent"

    async def _call(
        self, api_key: str, model: str, payload: dict, failure_prefix: str
    ) -> dict | Outcome:
        """POST the payload. Returns the decoded body on 2xx, otherwise a failure Outcome."""
        try:
            resp = await self._http.post(
                self._url(model),
                params={"key": api_key},
                json=payload,
                timeout=self._services.request_timeout,
            )
        except httpx.HTTPError as e:
            logger.error(f"Transport error calling {model}: {e!r}")
            return Fatal(f"{failure_prefix}: {str(e) or type(e).__name__}")

        if resp.status_code >= 400:
            error_status, message = _error_details(resp)
            if is_rate_limited(resp.status_code, f"{error_status} {message}"):
                return Retryable(f"{resp.status_code} {error_status or message[:200]}".strip())
            logger.warning(f"Provider Error {resp.status_code}: {message[:200]}")
            return Fatal(f"{failure_prefix}: {message}")

        try:
            data = resp.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            return Fatal(f"{failure_prefix}: upstream returned a non-JSON body")
        if not isinstance(data, dict):
            return Fatal(f"{failure_prefix}: unexpected response shape")
        return data

    async def generate_image(self, api_key: str, request: UpstreamRequest) -> Outcome:
        payload: dict[str, Any] = {
            "contents": [
                {"parts": [*(a.to_part() for a in request.attachments), {"text": request.prompt}]}
            ],
            "generationConfig": {"responseModalities": ["IMAGE", "TEXT"]},
        }
        failure_prefix = "Failed to generate content"
        data = await self._call(api_key, self._services.generate_model, payload, failure_prefix)
        if not isinstance(data, dict):
            return data

        try:
            return self._parse_image(data)
        except UnexpectedShape as e:
            logger.warning(f"Unexpected generateContent shape from {self._services.generate_model}: {e}")
            return Fatal(f"{failure_prefix}: unexpected response shape")

    def _parse_image(self, data: dict) -> Outcome:
        candidate = _first_candidate(data)
        if candidate is None:
            feedback = _expect(data.get("promptFeedback"), dict, {})
            if feedback.get("blockReason"):
                return Fatal(SAFETY_MESSAGE, status_code=400)
            return Fatal(NO_CANDIDATE_MESSAGE)

        if candidate.get("finishReason") == "SAFETY":
            return Fatal(SAFETY_MESSAGE, status_code=400)

        response_text = ""
        for part in _candidate_parts(candidate):
            inline = _expect(part.get("inlineData"), dict, {})
            if inline:
                encoded = _expect(inline.get("data"), str, "")
                try:
                    image_bytes = base64.b64decode(encoded)
                except ValueError:
                    return Fatal("API returned image data that is not valid base64.")
                mime_type = _expect(inline.get("mimeType"), str, "image/png")
                return Success(GeneratedImage(data=image_bytes, mime_type=mime_type))
            response_text += _part_text(part)

        if response_text:
            return Fatal(f'API returned text instead of an image: "{response_text}"')
        return Fatal(NO_IMAGE_MESSAGE)

    async def describe_image(self, api_key: str, request: UpstreamRequest) -> Outcome:
        payload = {
            "contents": [
                {"parts": [*(a.to_part() for a in request.attachments), {"text": request.prompt}]}
            ],
        }
        failure_prefix = "Failed to generate description"
        data = await self._call(api_key, self._services.describe_model, payload, failure_prefix)
        if not isinstance(data, dict):
            return data

        try:
            candidate = _first_candidate(data)
            text = ""
            if candidate is not None:
                text = "".join(_part_text(p) for p in _candidate_parts(candidate))
        except UnexpectedShape as e:
            logger.warning(f"Unexpected generateContent shape from {self._services.describe_model}: {e}")
            return Fatal(f"{failure_prefix}: unexpected response shape")
        if not text:
            return Fatal(NO_DESCRIPTION_MESSAGE)
        return Success(Description(text=text))
