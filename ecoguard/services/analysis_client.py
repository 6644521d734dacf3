"""Gemini analysis client.

Sends one image plus a mode-specific instruction to the Gemini
`generateContent` REST endpoint and parses the schema-constrained JSON reply
into a tagged AnalysisResult.

One HTTPS round trip per call: no retry, no backoff, no caching. The model is
non-deterministic, so repeated calls with the same image may differ.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict

import httpx

from ecoguard.shared.analysis_contract import (
    AnalysisMode,
    AnalysisResult,
    parse_mode,
    response_schema,
    tag_result,
)
from ecoguard.shared.config import DEFAULT_API_BASE, DEFAULT_MODEL, DEFAULT_TIMEOUT_S, Settings
from ecoguard.shared.errors import RequestError, ResponseParseError
from ecoguard.shared.upload import UploadedImage


LOGGER = logging.getLogger(__name__)

PROMPTS: Dict[str, str] = {
    "waste": (
        "Analyze this image of waste. Classify it, and provide detailed information on "
        "recycling, disposal, environmental impact, and health risks according to the "
        "provided JSON schema."
    ),
    "disease": (
        "Analyze this image of a waste dump or drainage area. Based on the visible "
        "conditions, predict potential diseases that could spread and provide detailed "
        "prevention tips according to the provided JSON schema."
    ),
}


def build_prompt(mode: AnalysisMode) -> str:
    return PROMPTS[parse_mode(mode)]


def build_payload(mode: AnalysisMode, image: UploadedImage) -> dict[str, Any]:
    return {
        "contents": [
            {
                "role": "user",
                "parts": [
                    {
                        "inlineData": {
                            "mimeType": image.mime_type,
                            "data": image.base64_payload(),
                        }
                    },
                    {"text": build_prompt(mode)},
                ],
            }
        ],
        "generationConfig": {
            "responseMimeType": "application/json",
            "responseSchema": response_schema(mode),
        },
    }


def extract_response_text(resp_json: Any) -> str:
    if not isinstance(resp_json, dict):
        raise ValueError("Gemini response must be a JSON object")

    candidates = resp_json.get("candidates")
    if not isinstance(candidates, list) or not candidates:
        feedback = resp_json.get("promptFeedback", {})
        reason = feedback.get("blockReason") if isinstance(feedback, dict) else None
        if reason:
            raise ValueError(f"Gemini blocked the prompt: {reason}")
        raise ValueError("Gemini response did not contain candidates")

    first = candidates[0] if isinstance(candidates[0], dict) else {}
    content = first.get("content", {})
    parts = content.get("parts", []) if isinstance(content, dict) else []
    texts: list[str] = []
    for part in parts or []:
        if isinstance(part, dict) and "text" in part:
            texts.append(str(part.get("text", "")))
    text = "".join(texts).strip()
    if not text:
        finish = first.get("finishReason", "")
        raise ValueError(f"Gemini response did not contain text (finishReason={finish or 'n/a'})")
    return text


def parse_result(mode: AnalysisMode, text: str) -> AnalysisResult:
    try:
        raw = json.loads(text.strip())
    except json.JSONDecodeError as exc:
        raise ResponseParseError(f"Model reply is not valid JSON: {exc}") from exc
    try:
        return tag_result(mode, raw)
    except ValueError as exc:
        raise ResponseParseError(f"Model reply does not match the {mode} schema: {exc}") from exc


def _extract_error_json(resp: httpx.Response) -> dict[str, Any]:
    try:
        payload = resp.json()
    except Exception:  # noqa: BLE001 - best effort only
        return {}
    return payload if isinstance(payload, dict) else {}


def error_meta(exc: BaseException) -> Dict[str, str]:
    """Return compact, non-secret error info for logs and the JSON API.

    Contract:
      {"http_status": "...", "code": "...", "message": "..."}
    """

    root = exc
    if isinstance(exc, (RequestError, ResponseParseError)) and exc.__cause__ is not None:
        root = exc.__cause__

    if isinstance(root, (TimeoutError, httpx.TimeoutException)):
        return {"http_status": "", "code": "timeout", "message": "Gemini request timed out"}

    if isinstance(root, httpx.HTTPStatusError):
        status = int(root.response.status_code)
        payload = _extract_error_json(root.response)
        err = payload.get("error", {})
        if not isinstance(err, dict):
            err = {}
        err_status = str(err.get("status", "")).strip()
        err_msg = str(err.get("message", "")).strip()

        code = err_status.lower() or f"http_{status}"
        if err_msg:
            message = err_msg[:200]
        else:
            snippet = (root.response.text or "").strip().replace("\n", " ")
            message = snippet[:200] if snippet else "Gemini request failed"
        return {"http_status": str(status), "code": code, "message": message}

    if isinstance(root, httpx.RequestError):
        return {"http_status": "", "code": "network", "message": root.__class__.__name__}
    if isinstance(exc, ResponseParseError) or isinstance(root, ValueError):
        msg = str(exc).strip() or exc.__class__.__name__
        return {"http_status": "", "code": "schema", "message": msg[:200]}

    return {"http_status": "", "code": "unknown", "message": root.__class__.__name__}


class GeminiAnalysisClient:
    """Thin async wrapper around `models/{model}:generateContent`."""

    def __init__(
        self,
        api_key: str,
        *,
        model: str = DEFAULT_MODEL,
        api_base: str = DEFAULT_API_BASE,
        timeout_s: float = DEFAULT_TIMEOUT_S,
    ) -> None:
        self._api_key = api_key
        self.model = model
        self.api_base = api_base.rstrip("/")
        self.timeout_s = timeout_s

    @classmethod
    def from_settings(cls, settings: Settings) -> "GeminiAnalysisClient":
        return cls(
            settings.api_key,
            model=settings.model,
            api_base=settings.api_base,
            timeout_s=settings.timeout_s,
        )

    @property
    def url(self) -> str:
        return f"{self.api_base}/models/{self.model}:generateContent"

    async def analyze(self, mode: AnalysisMode, image: UploadedImage) -> AnalysisResult:
        mode = parse_mode(mode)
        if image is None or not image.payload:
            raise ValueError("image payload must be non-empty")

        payload = build_payload(mode, image)
        headers = {
            "x-goog-api-key": self._api_key,
            "Content-Type": "application/json",
        }

        try:
            async with httpx.AsyncClient(timeout=httpx.Timeout(self.timeout_s)) as client:
                resp = await client.post(self.url, headers=headers, json=payload)
                resp.raise_for_status()
                resp_json = resp.json()
        except (httpx.HTTPError, TimeoutError) as exc:
            raise RequestError() from exc
        except ValueError as exc:
            # resp.json() on a non-JSON 2xx body.
            raise ResponseParseError(f"Gemini response is not JSON: {exc}") from exc

        try:
            text = extract_response_text(resp_json)
        except ValueError as exc:
            raise ResponseParseError(str(exc)) from exc

        result = parse_result(mode, text)
        LOGGER.info("Gemini %s analysis succeeded (model=%s)", mode, self.model)
        return result
