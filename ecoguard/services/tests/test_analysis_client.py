from __future__ import annotations

import asyncio
import io
import json
from typing import Any

import httpx
import pytest
from PIL import Image

from ecoguard.services import analysis_client as svc
from ecoguard.shared.config import Settings
from ecoguard.shared.errors import RequestError, ResponseParseError
from ecoguard.shared.upload import load_image_bytes


GEMINI_URL = "https://generativelanguage.googleapis.com/v1beta/models/gemini-2.5-flash:generateContent"


def _image():
    img = Image.new("RGB", (32, 32), color=(100, 120, 140))
    buf = io.BytesIO()
    img.save(buf, format="JPEG")
    return load_image_bytes(buf.getvalue(), "image/jpeg", "x.jpg")


def _gemini_payload(result: Any) -> dict[str, Any]:
    text = result if isinstance(result, str) else json.dumps(result)
    return {
        "candidates": [
            {
                "content": {"role": "model", "parts": [{"text": text}]},
                "finishReason": "STOP",
            }
        ]
    }


def _waste_result() -> dict[str, Any]:
    return {
        "wasteType": "Glass",
        "recycling": {"possible": True, "instructions": "Rinse the bottle."},
        "reuse": "Use as a vase.",
        "disposal": "Wrap broken glass before binning.",
        "environmentalImpact": "Does not biodegrade.",
        "healthRisks": [{"name": "Cuts", "description": "Broken glass can cause cuts."}],
    }


def _install_fake_client(monkeypatch, responses: list[Any], calls: list[dict[str, Any]]) -> None:
    class FakeAsyncClient:
        def __init__(self, *args, **kwargs) -> None:
            calls.append({"timeout": kwargs.get("timeout")})

        async def __aenter__(self):
            return self

        async def __aexit__(self, exc_type, exc, tb):
            return False

        async def post(self, url, headers=None, json=None):
            calls.append({"url": url, "headers": headers, "json": json})
            response = responses.pop(0)
            if isinstance(response, Exception):
                raise response
            return response

    monkeypatch.setattr(svc.httpx, "AsyncClient", FakeAsyncClient)


def _ok(payload: Any) -> httpx.Response:
    return httpx.Response(200, request=httpx.Request("POST", GEMINI_URL), json=payload)


def test_build_payload_attaches_image_prompt_and_schema() -> None:
    image = _image()

    payload = svc.build_payload("disease", image)

    parts = payload["contents"][0]["parts"]
    assert parts[0]["inlineData"]["mimeType"] == "image/jpeg"
    assert parts[0]["inlineData"]["data"] == image.base64_payload()
    assert "predict potential diseases" in parts[1]["text"]
    config = payload["generationConfig"]
    assert config["responseMimeType"] == "application/json"
    assert config["responseSchema"]["required"] == ["overallRiskLevel", "predictedDiseases"]


def test_analyze_waste_success(monkeypatch) -> None:
    calls: list[dict[str, Any]] = []
    _install_fake_client(monkeypatch, [_ok(_gemini_payload(_waste_result()))], calls)
    client = svc.GeminiAnalysisClient("fake-key", timeout_s=7.0)

    result = asyncio.run(client.analyze("waste", _image()))

    assert result["mode"] == "waste"
    assert result["data"]["wasteType"] == "Glass"
    assert calls[0]["timeout"] == httpx.Timeout(7.0)
    assert calls[1]["url"] == GEMINI_URL
    assert calls[1]["headers"]["x-goog-api-key"] == "fake-key"
    assert "waste" in calls[1]["json"]["contents"][0]["parts"][1]["text"]


def test_analyze_disease_success_from_settings(monkeypatch) -> None:
    calls: list[dict[str, Any]] = []
    reply = {
        "overallRiskLevel": "Low",
        "predictedDiseases": [
            {"name": "Dengue Fever", "cause": "Mosquito breeding", "preventionTips": ["Drain water"]}
        ],
    }
    _install_fake_client(monkeypatch, [_ok(_gemini_payload(reply))], calls)
    settings = Settings(api_key="k", model="gemini-test", api_base="http://local/v1beta")
    client = svc.GeminiAnalysisClient.from_settings(settings)

    result = asyncio.run(client.analyze("disease", _image()))

    assert result == {"mode": "disease", "data": reply}
    assert calls[1]["url"] == "http://local/v1beta/models/gemini-test:generateContent"


def test_analyze_http_error_raises_request_error(monkeypatch) -> None:
    request = httpx.Request("POST", GEMINI_URL)
    responses = [
        httpx.Response(
            403,
            request=request,
            json={"error": {"code": 403, "message": "API key not valid", "status": "PERMISSION_DENIED"}},
        )
    ]
    _install_fake_client(monkeypatch, responses, [])

    with pytest.raises(RequestError) as excinfo:
        asyncio.run(svc.GeminiAnalysisClient("bad-key").analyze("waste", _image()))

    meta = svc.error_meta(excinfo.value)
    assert meta == {"http_status": "403", "code": "permission_denied", "message": "API key not valid"}


def test_analyze_timeout_raises_request_error(monkeypatch) -> None:
    _install_fake_client(monkeypatch, [httpx.ReadTimeout("slow")], [])

    with pytest.raises(RequestError) as excinfo:
        asyncio.run(svc.GeminiAnalysisClient("k").analyze("waste", _image()))

    assert svc.error_meta(excinfo.value)["code"] == "timeout"


def test_analyze_transport_error_raises_request_error(monkeypatch) -> None:
    _install_fake_client(monkeypatch, [httpx.ConnectError("offline")], [])

    with pytest.raises(RequestError) as excinfo:
        asyncio.run(svc.GeminiAnalysisClient("k").analyze("disease", _image()))

    assert svc.error_meta(excinfo.value)["code"] == "network"


def test_analyze_malformed_json_raises_parse_error(monkeypatch) -> None:
    _install_fake_client(monkeypatch, [_ok(_gemini_payload("{not json"))], [])

    with pytest.raises(ResponseParseError, match="not valid JSON"):
        asyncio.run(svc.GeminiAnalysisClient("k").analyze("waste", _image()))


def test_analyze_wrong_shape_raises_parse_error(monkeypatch) -> None:
    _install_fake_client(monkeypatch, [_ok(_gemini_payload({"overallRiskLevel": "High"}))], [])

    with pytest.raises(ResponseParseError, match="waste schema") as excinfo:
        asyncio.run(svc.GeminiAnalysisClient("k").analyze("waste", _image()))

    assert svc.error_meta(excinfo.value)["code"] == "schema"


def test_analyze_without_candidates_raises_parse_error(monkeypatch) -> None:
    blocked = {"promptFeedback": {"blockReason": "SAFETY"}}
    _install_fake_client(monkeypatch, [_ok(blocked)], [])

    with pytest.raises(ResponseParseError, match="SAFETY"):
        asyncio.run(svc.GeminiAnalysisClient("k").analyze("waste", _image()))


def test_analyze_rejects_unknown_mode_before_any_request(monkeypatch) -> None:
    calls: list[dict[str, Any]] = []
    _install_fake_client(monkeypatch, [], calls)

    with pytest.raises(ValueError):
        asyncio.run(svc.GeminiAnalysisClient("k").analyze("compost", _image()))

    assert calls == []


def test_extract_response_text_joins_parts() -> None:
    payload = {"candidates": [{"content": {"parts": [{"text": '{"a":'}, {"text": " 1}"}]}}]}

    assert svc.extract_response_text(payload) == '{"a": 1}'


def test_error_meta_non_json_http_error_uses_snippet() -> None:
    req = httpx.Request("POST", GEMINI_URL)
    resp = httpx.Response(502, request=req, text="<html>gateway</html>")
    exc = RequestError()
    exc.__cause__ = httpx.HTTPStatusError("bad", request=req, response=resp)

    meta = svc.error_meta(exc)

    assert meta["http_status"] == "502"
    assert meta["code"] == "http_502"
    assert "gateway" in meta["message"]


def test_error_meta_unknown_exception() -> None:
    assert svc.error_meta(Exception("x"))["code"] == "unknown"
