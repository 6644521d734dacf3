"""HTML renderer: a pure function of a SessionState snapshot.

No decisions about state live here. The top-level view comes from
`state.view`; inside the result view the card is picked from the result's own
`mode` tag, never from `state.mode`.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any, Dict

from jinja2 import Environment, FileSystemLoader, select_autoescape

from ecoguard.services.session_controller import PROGRESS_MESSAGES, SessionState
from ecoguard.shared.upload import MAX_UPLOAD_BYTES


TEMPLATES_DIR = Path(__file__).resolve().parent / "templates"

VIEW_TEMPLATES: Dict[str, str] = {
    "home": "home.html",
    "analyzing": "analyzing.html",
    "result": "result.html",
}

MODE_TITLES: Dict[str, str] = {
    "waste": "Waste Classifier",
    "disease": "Disease Predictor",
}

RISK_CLASSES: Dict[str, str] = {
    "High": "risk-high",
    "Medium": "risk-medium",
    "Low": "risk-low",
}

RESULT_TEMPLATES: Dict[str, str] = {
    "waste": "waste_result.html",
    "disease": "disease_result.html",
}


@lru_cache(maxsize=1)
def get_environment() -> Environment:
    return Environment(
        loader=FileSystemLoader(str(TEMPLATES_DIR)),
        autoescape=select_autoescape(["html"]),
        trim_blocks=True,
        lstrip_blocks=True,
    )


def risk_level_class(level: str) -> str:
    return RISK_CLASSES.get(str(level), "risk-low")


def build_view_model(state: SessionState) -> dict[str, Any]:
    view_model: dict[str, Any] = {
        "view": state.view,
        "template": VIEW_TEMPLATES.get(state.view, "home.html"),
        "mode": state.mode,
        "title": MODE_TITLES.get(state.mode or "", ""),
        "show_reset": state.view != "home",
        "busy": state.busy,
        "progress_message": state.progress_message,
        "error": state.error,
        "image_url": state.image.preview_data_url if state.image is not None else None,
        "can_analyze": (
            state.view == "analyzing"
            and state.mode is not None
            and state.image is not None
            and not state.busy
        ),
        "max_upload_mb": MAX_UPLOAD_BYTES // (1024 * 1024),
        "analyze_progress": PROGRESS_MESSAGES.get(state.mode or "", ""),
        "result": None,
        "result_template": None,
    }

    result = state.result
    if result is not None:
        view_model["result"] = result["data"]
        view_model["result_template"] = RESULT_TEMPLATES[result["mode"]]
        if result["mode"] == "disease":
            view_model["risk_class"] = risk_level_class(result["data"]["overallRiskLevel"])
    return view_model


def render_page(state: SessionState) -> str:
    view_model = build_view_model(state)
    template = get_environment().get_template(view_model["template"])
    return template.render(**view_model)
