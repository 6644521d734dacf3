"""Per-session view controller.

A small state machine that sequences one user's interaction:

    home --select_mode--> analyzing --analyze (ok)--> result
                              ^   |
                              +---+ upload_image / change_image / analyze (failed)

    any state --reset--> home

The controller is the only writer of SessionState. The renderer only ever sees
`snapshot()` copies.

Late responses: `reset()` advances `epoch`. An `analyze()` that started under
an older epoch drops its outcome instead of writing it into the new session.
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from dataclasses import dataclass, replace
from typing import Any, Awaitable, Callable, Literal, Optional, Protocol

from ecoguard.services.analysis_client import error_meta
from ecoguard.shared.analysis_contract import AnalysisMode, AnalysisResult, parse_mode
from ecoguard.shared.errors import EcoGuardError
from ecoguard.shared.upload import UploadedImage, validate_and_load


LOGGER = logging.getLogger(__name__)

View = Literal["home", "analyzing", "result"]

ANALYSIS_FAILED_MESSAGE = "An error occurred during analysis. Please try again."
PROGRESS_MESSAGES = {
    "waste": "Classifying waste...",
    "disease": "Predicting diseases...",
}


class AnalysisClient(Protocol):
    async def analyze(self, mode: AnalysisMode, image: UploadedImage) -> AnalysisResult:
        ...


ImageLoader = Callable[[Any], Awaitable[UploadedImage]]


@dataclass(frozen=True)
class SessionState:
    view: View = "home"
    mode: Optional[AnalysisMode] = None
    image: Optional[UploadedImage] = None
    result: Optional[AnalysisResult] = None
    error: Optional[str] = None
    busy: bool = False
    progress_message: str = ""
    epoch: int = 0

    def to_public_dict(self) -> dict[str, Any]:
        """JSON-safe view of the state (image bytes are left out)."""

        image = None
        if self.image is not None:
            image = {
                "filename": self.image.filename,
                "mime_type": self.image.mime_type,
                "size_bytes": self.image.size_bytes,
            }
        return {
            "view": self.view,
            "mode": self.mode,
            "image": image,
            "result": self.result,
            "error": self.error,
            "busy": self.busy,
            "progress_message": self.progress_message,
        }


class SessionController:
    def __init__(self, client: AnalysisClient, *, loader: ImageLoader = validate_and_load) -> None:
        self._client = client
        self._loader = loader
        self._state = SessionState()

    @property
    def state(self) -> SessionState:
        return self._state

    def snapshot(self) -> SessionState:
        # SessionState is frozen; handing out the current value is already a snapshot.
        return self._state

    def _update(self, **changes: Any) -> None:
        self._state = replace(self._state, **changes)

    def select_mode(self, mode: str) -> None:
        parsed = parse_mode(mode)
        if self._state.view != "home":
            LOGGER.info("Ignoring mode change to %s outside home view", parsed)
            return
        self._update(view="analyzing", mode=parsed, image=None, result=None, error=None)

    async def upload_image(self, upload: Any) -> None:
        if self._state.view != "analyzing" or self._state.busy:
            return

        epoch = self._state.epoch
        try:
            image = await self._loader(upload)
        except EcoGuardError as exc:
            if epoch == self._state.epoch:
                self._update(image=None, error=exc.message)
            return

        if epoch != self._state.epoch:
            LOGGER.info("Dropping upload that finished after a reset")
            return
        self._update(image=image, error=None)

    def reject_upload(self, exc: EcoGuardError) -> None:
        """Record an upload refused before it reached the loader (e.g. oversized request)."""

        if self._state.view != "analyzing" or self._state.busy:
            return
        self._update(image=None, error=exc.message)

    def change_image(self) -> None:
        if self._state.view != "analyzing" or self._state.busy:
            return
        self._update(image=None)

    async def analyze(self) -> None:
        state = self._state
        if state.view != "analyzing" or state.busy or state.mode is None or state.image is None:
            return

        mode = state.mode
        image = state.image
        epoch = state.epoch
        self._update(
            busy=True,
            progress_message=PROGRESS_MESSAGES[mode],
            error=None,
            result=None,
        )

        result: Optional[AnalysisResult] = None
        try:
            result = await self._client.analyze(mode, image)
        except Exception as exc:  # noqa: BLE001 - every failure becomes a visible error
            LOGGER.warning("Analysis failed (mode=%s): %s", mode, error_meta(exc))
        finally:
            # Also runs on cancellation (client disconnect, shutdown), so busy never sticks.
            if epoch != self._state.epoch:
                LOGGER.info("Dropping analysis outcome that finished after a reset")
            elif result is None:
                self._update(busy=False, progress_message="", error=ANALYSIS_FAILED_MESSAGE)
            else:
                self._update(view="result", busy=False, progress_message="", result=result)

    def reset(self) -> None:
        self._state = SessionState(epoch=self._state.epoch + 1)


class SessionStore:
    """In-memory map of session id -> controller, least recently used evicted first."""

    def __init__(self, client: AnalysisClient, *, max_sessions: int = 1024, loader: ImageLoader = validate_and_load) -> None:
        self._client = client
        self._loader = loader
        self.max_sessions = max_sessions
        self._sessions: "OrderedDict[str, SessionController]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def get(self, session_id: str) -> SessionController:
        controller = self._sessions.get(session_id)
        if controller is not None:
            self._sessions.move_to_end(session_id)
            return controller

        controller = SessionController(self._client, loader=self._loader)
        self._sessions[session_id] = controller
        while len(self._sessions) > self.max_sessions:
            evicted, _ = self._sessions.popitem(last=False)
            LOGGER.info("Evicted idle session %s", evicted[:8])
        return controller
