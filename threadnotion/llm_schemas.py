# threadnotion/llm_schemas.py
"""
Shapes the LLM is asked to return, and the normalization applied before
they are validated and stored.
"""
import json
import logging
import math
from typing import Any

from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger("threadnotion")

SCORE_KEYS = ("storytelling", "emotional", "persuasion", "productKnow")

# alias -> canonical key
_EVALUATION_KEY_ALIASES = {
    "product_know": "productKnow",
    "productknow": "productKnow",
    "productKnowledge": "productKnow",
    "product_knowledge": "productKnow",
    "emotional_connection": "emotional",
    "emotionalConnection": "emotional",
    "story_telling": "storytelling",
    "strength": "strengths",
    "tip": "tips",
}


class InvalidLlmOutputError(Exception):
    """The LLM reply could not be coerced into the expected shape."""

    def __init__(self, message: str, details: Any = None):
        super().__init__(message)
        self.details = details


class EvaluationResult(BaseModel):
    storytelling: int = Field(ge=0, le=10)
    emotional: int = Field(ge=0, le=10)
    persuasion: int = Field(ge=0, le=10)
    productKnow: int = Field(ge=0, le=10)
    total: int = Field(ge=0, le=40)
    strengths: str
    tips: str


def _coerce_score(value: Any) -> Any:
    """
    Numeric strings become numbers, non-integral numbers are rounded half up.
    Anything else is returned untouched for the validator to reject.
    """
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        text = value.strip()
        if "/" in text:
            # "7/10"
            text = text.split("/", 1)[0].strip()
        try:
            value = float(text)
        except ValueError:
            return value
    if isinstance(value, float):
        if not math.isfinite(value):
            return value
        return int(math.floor(value + 0.5))
    return value


def _coerce_text(value: Any) -> Any:
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        return "\n".join(str(v).strip() for v in value if v is not None and str(v).strip())
    return value


def normalize_evaluation(raw: Any) -> EvaluationResult:
    """
    Turns a judge reply into an EvaluationResult.

    Key aliases are mapped to the canonical names, scores are coerced to ints,
    list-valued strengths/tips are joined, and total is always recomputed as the
    sum of the four scores.
    """
    if not isinstance(raw, dict):
        raise InvalidLlmOutputError("Evaluation must be a JSON object", details={"received": type(raw).__name__})

    data: dict[str, Any] = {}
    for key, value in raw.items():
        canonical = _EVALUATION_KEY_ALIASES.get(key, key)
        # canonical keys win over aliases
        if canonical in data and key != canonical:
            continue
        data[canonical] = value

    for key in SCORE_KEYS:
        if key in data:
            data[key] = _coerce_score(data[key])
    data["strengths"] = _coerce_text(data.get("strengths"))
    data["tips"] = _coerce_text(data.get("tips"))

    if all(isinstance(data.get(k), int) and not isinstance(data.get(k), bool) for k in SCORE_KEYS):
        computed = sum(data[k] for k in SCORE_KEYS)
        reported = _coerce_score(data.get("total"))
        if reported != computed:
            logger.debug(f"normalize_evaluation: replacing reported total {reported!r} with {computed}")
        data["total"] = computed

    try:
        return EvaluationResult.model_validate(data)
    except ValidationError as e:
        raise InvalidLlmOutputError("Evaluation failed validation", details=e.errors(include_url=False)) from e


def format_script_to_string(content: Any) -> str:
    """
    Stored script content has taken a few shapes over time: plain text,
    {"script": text}, {"script": [steps]} or a bare list of steps.
    """
    if isinstance(content, str):
        return content
    if isinstance(content, dict) and content.get("script") is not None:
        script = content["script"]
        if isinstance(script, str):
            return script
        if isinstance(script, list):
            return "\n\n".join(str(s) for s in script)
    if isinstance(content, list):
        return "\n\n".join(str(s) for s in content)
    return json.dumps(content, indent=2)
