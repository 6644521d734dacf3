"""Analysis result contract.

Describes the two shapes the external model may return (waste classification
and disease prediction), the tagged `AnalysisResult` union handed to the
renderer, and the response schemas sent to Gemini so the model's JSON already
matches what the validators below accept.

It is intentionally stdlib-only so it can be imported anywhere without heavy deps.
"""

from __future__ import annotations

from typing import Any, Dict, List, Literal, TypedDict, Union


AnalysisMode = Literal["waste", "disease"]
RiskLevel = Literal["Low", "Medium", "High"]

ANALYSIS_MODES: tuple[str, ...] = ("waste", "disease")
RISK_LEVELS: tuple[str, ...] = ("Low", "Medium", "High")


class RecyclingInfo(TypedDict):
    possible: bool
    instructions: str


class HealthRisk(TypedDict):
    name: str
    description: str


class WasteClassificationResult(TypedDict):
    wasteType: str
    recycling: RecyclingInfo
    reuse: str
    disposal: str
    environmentalImpact: str
    healthRisks: List[HealthRisk]


class PredictedDisease(TypedDict):
    name: str
    cause: str
    preventionTips: List[str]


class DiseasePredictionResult(TypedDict):
    overallRiskLevel: RiskLevel
    predictedDiseases: List[PredictedDisease]


class WasteAnalysis(TypedDict):
    mode: Literal["waste"]
    data: WasteClassificationResult


class DiseaseAnalysis(TypedDict):
    mode: Literal["disease"]
    data: DiseasePredictionResult


AnalysisResult = Union[WasteAnalysis, DiseaseAnalysis]


def parse_mode(value: Any) -> AnalysisMode:
    mode = str(value or "").strip().lower()
    if mode not in ANALYSIS_MODES:
        raise ValueError(f"Unknown analysis mode: {value!r}")
    return mode  # type: ignore[return-value]


# Gemini `responseSchema` uses the OpenAPI subset with upper-case type names.
def waste_response_schema() -> dict[str, Any]:
    return {
        "type": "OBJECT",
        "properties": {
            "wasteType": {
                "type": "STRING",
                "description": (
                    "The classified type of waste (e.g., Plastic, Organic, E-Waste, "
                    "Paper, Glass, Metal, Wood)."
                ),
            },
            "recycling": {
                "type": "OBJECT",
                "properties": {
                    "possible": {
                        "type": "BOOLEAN",
                        "description": "Whether this item is typically recyclable.",
                    },
                    "instructions": {
                        "type": "STRING",
                        "description": (
                            "Detailed instructions on how to recycle this waste. "
                            "Provide actionable steps."
                        ),
                    },
                },
                "required": ["possible", "instructions"],
            },
            "reuse": {
                "type": "STRING",
                "description": "Creative and practical ideas for reusing this type of waste item.",
            },
            "disposal": {
                "type": "STRING",
                "description": (
                    "Instructions for safe and proper disposal if recycling or reuse "
                    "is not possible."
                ),
            },
            "environmentalImpact": {
                "type": "STRING",
                "description": (
                    "A summary of the negative environmental effects of improper "
                    "disposal of this waste type."
                ),
            },
            "healthRisks": {
                "type": "ARRAY",
                "description": "A list of potential diseases or health risks associated with this waste.",
                "items": {
                    "type": "OBJECT",
                    "properties": {
                        "name": {
                            "type": "STRING",
                            "description": "Name of the potential disease or health risk.",
                        },
                        "description": {
                            "type": "STRING",
                            "description": "Description of how this waste can cause the health risk.",
                        },
                    },
                    "required": ["name", "description"],
                },
            },
        },
        "required": [
            "wasteType",
            "recycling",
            "reuse",
            "disposal",
            "environmentalImpact",
            "healthRisks",
        ],
    }


def disease_response_schema() -> dict[str, Any]:
    return {
        "type": "OBJECT",
        "properties": {
            "overallRiskLevel": {
                "type": "STRING",
                "format": "enum",
                "enum": list(RISK_LEVELS),
                "description": "An overall assessment of the health risk, categorized as Low, Medium, or High.",
            },
            "predictedDiseases": {
                "type": "ARRAY",
                "description": "A list of potential diseases that could spread from the conditions shown.",
                "items": {
                    "type": "OBJECT",
                    "properties": {
                        "name": {
                            "type": "STRING",
                            "description": (
                                "The name of the potential disease (e.g., Dengue Fever, "
                                "Cholera, Typhoid, Malaria)."
                            ),
                        },
                        "cause": {
                            "type": "STRING",
                            "description": (
                                "How the conditions in the image (e.g., stagnant water, "
                                "pests) can lead to this disease."
                            ),
                        },
                        "preventionTips": {
                            "type": "ARRAY",
                            "description": (
                                "A list of specific, actionable prevention tips for the "
                                "community and individuals."
                            ),
                            "items": {"type": "STRING"},
                        },
                    },
                    "required": ["name", "cause", "preventionTips"],
                },
            },
        },
        "required": ["overallRiskLevel", "predictedDiseases"],
    }


RESPONSE_SCHEMAS: Dict[str, Any] = {
    "waste": waste_response_schema,
    "disease": disease_response_schema,
}


def response_schema(mode: AnalysisMode) -> dict[str, Any]:
    return RESPONSE_SCHEMAS[parse_mode(mode)]()


def _require_text(raw: dict[str, Any], key: str, where: str) -> str:
    value = raw.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"{where}.{key} must be a non-empty string")
    return value.strip()


def _require_object(value: Any, where: str) -> dict[str, Any]:
    if not isinstance(value, dict):
        raise ValueError(f"{where} must be a JSON object")
    return value


def _require_list(value: Any, where: str) -> list[Any]:
    if not isinstance(value, list):
        raise ValueError(f"{where} must be an array")
    return value


def validate_waste_result(raw: Any) -> WasteClassificationResult:
    body = _require_object(raw, "result")

    recycling = _require_object(body.get("recycling"), "result.recycling")
    possible = recycling.get("possible")
    if not isinstance(possible, bool):
        raise ValueError("result.recycling.possible must be boolean")

    health_risks: list[HealthRisk] = []
    for idx, item in enumerate(_require_list(body.get("healthRisks"), "result.healthRisks")):
        where = f"result.healthRisks[{idx}]"
        entry = _require_object(item, where)
        health_risks.append(
            {
                "name": _require_text(entry, "name", where),
                "description": _require_text(entry, "description", where),
            }
        )

    return {
        "wasteType": _require_text(body, "wasteType", "result"),
        "recycling": {
            "possible": possible,
            "instructions": _require_text(recycling, "instructions", "result.recycling"),
        },
        "reuse": _require_text(body, "reuse", "result"),
        "disposal": _require_text(body, "disposal", "result"),
        "environmentalImpact": _require_text(body, "environmentalImpact", "result"),
        "healthRisks": health_risks,
    }


def normalize_risk_level(value: Any) -> RiskLevel:
    level = str(value or "").strip().capitalize()
    if level not in RISK_LEVELS:
        raise ValueError(f"overallRiskLevel must be one of {', '.join(RISK_LEVELS)}")
    return level  # type: ignore[return-value]


def validate_disease_result(raw: Any) -> DiseasePredictionResult:
    body = _require_object(raw, "result")
    risk_level = normalize_risk_level(body.get("overallRiskLevel"))

    diseases: list[PredictedDisease] = []
    for idx, item in enumerate(_require_list(body.get("predictedDiseases"), "result.predictedDiseases")):
        where = f"result.predictedDiseases[{idx}]"
        entry = _require_object(item, where)
        tips_raw = _require_list(entry.get("preventionTips"), f"{where}.preventionTips")
        tips = [str(tip).strip() for tip in tips_raw if isinstance(tip, str) and tip.strip()]
        if not tips:
            raise ValueError(f"{where}.preventionTips must contain at least 1 non-empty tip")
        diseases.append(
            {
                "name": _require_text(entry, "name", where),
                "cause": _require_text(entry, "cause", where),
                "preventionTips": tips,
            }
        )

    return {"overallRiskLevel": risk_level, "predictedDiseases": diseases}


def tag_result(mode: AnalysisMode, raw: Any) -> AnalysisResult:
    """Validate a parsed model reply and wrap it with its mode tag.

    Raises ValueError when the reply does not match the shape for `mode`.
    """

    mode = parse_mode(mode)
    if mode == "waste":
        return {"mode": "waste", "data": validate_waste_result(raw)}
    return {"mode": "disease", "data": validate_disease_result(raw)}
