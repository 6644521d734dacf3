"""EcoGuard web app.

Browser flow (server-rendered, one SessionController per cookie):
  GET  /               -> current page for this session
  POST /mode           -> form field `mode` = waste | disease
  POST /upload         -> multipart field `image`
  POST /change-image
  POST /analyze
  POST /reset
Every POST redirects (303) back to `/`, so the page is always rendered from the
latest session snapshot.

JSON API (stateless):
  POST /api/v1/analyze  -> multipart `image` + form `mode`
  GET  /api/v1/session  -> current session snapshot (no image bytes)
  GET  /health

Run (from repo root):
  uvicorn main:app --host 0.0.0.0 --port 8000

Quick curl:
  curl -X POST http://127.0.0.1:8000/api/v1/analyze -F "mode=waste" -F "image=@test.jpg"
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional
from uuid import uuid4

from fastapi import FastAPI, File, Form, Request, UploadFile
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse, Response

from ecoguard.services.analysis_client import GeminiAnalysisClient, error_meta
from ecoguard.services.renderer import render_page
from ecoguard.services.session_controller import AnalysisClient, SessionController, SessionStore
from ecoguard.shared.analysis_contract import parse_mode
from ecoguard.shared.config import Settings, load_settings
from ecoguard.shared.errors import (
    DecodeError,
    EcoGuardError,
    FileTooLarge,
    RequestError,
    ResponseParseError,
)
from ecoguard.shared.upload import MAX_UPLOAD_BYTES, validate_and_load


APP_VERSION = "1.0.0"
SESSION_COOKIE = "ecoguard_session"

# Multipart framing and the `mode` field fit comfortably in this allowance.
MAX_REQUEST_BYTES = MAX_UPLOAD_BYTES + 64 * 1024
UPLOAD_PATHS = {"/upload", "/api/v1/analyze"}

LOGGER = logging.getLogger(__name__)

ERROR_STATUS: Dict[type, int] = {
    FileTooLarge: 413,
    DecodeError: 400,
    RequestError: 502,
    ResponseParseError: 502,
}


def _error(code: str, message: str, status_code: int) -> JSONResponse:
    payload: Dict[str, Any] = {
        "status": "error",
        "request_id": str(uuid4()),
        "code": code,
        "message": message,
        "data": None,
    }
    return JSONResponse(status_code=status_code, content=payload)


def _session_id(request: Request) -> str:
    return request.cookies.get(SESSION_COOKIE) or uuid4().hex


def _with_session_cookie(response: Response, session_id: str) -> Response:
    response.set_cookie(SESSION_COOKIE, session_id, httponly=True, samesite="lax")
    return response


def _redirect_home(session_id: str) -> Response:
    return _with_session_cookie(RedirectResponse("/", status_code=303), session_id)


def _declared_length(request: Request) -> Optional[int]:
    raw = request.headers.get("content-length")
    try:
        return int(raw) if raw is not None else None
    except ValueError:
        return None


def create_app(
    settings: Optional[Settings] = None,
    client: Optional[AnalysisClient] = None,
) -> FastAPI:
    """Build the app. Raises ConfigurationError before anything is served when
    no settings are given and the environment is incomplete."""

    if settings is None:
        settings = load_settings()
    if client is None:
        client = GeminiAnalysisClient.from_settings(settings)

    sessions = SessionStore(client, max_sessions=settings.max_sessions)

    app = FastAPI(title="EcoGuard", version=APP_VERSION)
    app.state.settings = settings
    app.state.analysis_client = client
    app.state.sessions = sessions

    def _controller(session_id: str) -> SessionController:
        return sessions.get(session_id)

    # Runs before FastAPI parses the multipart body, so oversized uploads are
    # never spooled.
    @app.middleware("http")
    async def limit_upload_size(request: Request, call_next):
        if request.method == "POST" and request.url.path in UPLOAD_PATHS:
            length = _declared_length(request)
            if length is not None and length > MAX_REQUEST_BYTES:
                exc = FileTooLarge()
                LOGGER.warning("Rejected %s request of %d bytes before parsing", request.url.path, length)
                if request.url.path == "/upload":
                    session_id = _session_id(request)
                    _controller(session_id).reject_upload(exc)
                    return _redirect_home(session_id)
                return _error(exc.code, exc.message, status_code=413)
        return await call_next(request)

    @app.get("/health")
    def health() -> Dict[str, str]:
        return {"status": "ok"}

    @app.get("/", response_class=HTMLResponse)
    def index(request: Request) -> Response:
        session_id = _session_id(request)
        html = render_page(_controller(session_id).snapshot())
        return _with_session_cookie(HTMLResponse(html), session_id)

    @app.post("/mode")
    def select_mode(request: Request, mode: str = Form(...)) -> Response:
        session_id = _session_id(request)
        try:
            _controller(session_id).select_mode(mode)
        except ValueError as exc:
            return _error("INVALID_MODE", str(exc), status_code=400)
        return _redirect_home(session_id)

    @app.post("/upload")
    async def upload(request: Request, image: UploadFile = File(...)) -> Response:
        session_id = _session_id(request)
        await _controller(session_id).upload_image(image)
        return _redirect_home(session_id)

    @app.post("/change-image")
    def change_image(request: Request) -> Response:
        session_id = _session_id(request)
        _controller(session_id).change_image()
        return _redirect_home(session_id)

    @app.post("/analyze")
    async def analyze(request: Request) -> Response:
        session_id = _session_id(request)
        await _controller(session_id).analyze()
        return _redirect_home(session_id)

    @app.post("/reset")
    def reset(request: Request) -> Response:
        session_id = _session_id(request)
        _controller(session_id).reset()
        return _redirect_home(session_id)

    @app.get("/api/v1/session")
    def session_state(request: Request) -> Response:
        session_id = _session_id(request)
        payload = _controller(session_id).snapshot().to_public_dict()
        return _with_session_cookie(JSONResponse(content=payload), session_id)

    @app.post("/api/v1/analyze")
    async def analyze_api(
        image: UploadFile = File(...),
        mode: str = Form(...),
    ) -> JSONResponse:
        request_id = str(uuid4())
        try:
            parsed_mode = parse_mode(mode)
        except ValueError as exc:
            return _error("INVALID_MODE", str(exc), status_code=400)

        try:
            uploaded = await validate_and_load(image)
            result = await client.analyze(parsed_mode, uploaded)
        except EcoGuardError as exc:
            meta = error_meta(exc)
            LOGGER.warning("API analysis failed (mode=%s): %s", parsed_mode, meta)
            return _error(exc.code, exc.message, status_code=ERROR_STATUS.get(type(exc), 500))

        return JSONResponse(
            status_code=200,
            content={"status": "success", "request_id": request_id, "data": result},
        )

    return app
