"""
Parsing boundary for inference service responses.

The upstream text-generation service does not guarantee strict JSON: it may
wrap the object in markdown code fences or add prose around it. Everything
that turns raw text into a validated turn goes through this module, and every
failure surfaces as MalformedResponseError.
"""

import json
import re
from typing import Any, Dict, Type, TypeVar

import structlog
from pydantic import BaseModel, ValidationError

from brandcoach.core.exceptions import MalformedResponseError
from brandcoach.domain.models.turn import DynamicTurnResponse, FixedStepResponse

log = structlog.get_logger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

_FENCE = re.compile(r"```(?:json)?[ \t]*\n?", re.IGNORECASE)


def strip_code_fences(text: str) -> str:
    """Remove markdown code-fence markers anywhere in the text."""
    return _FENCE.sub("", text).strip()


def parse_json_object(raw: str) -> Dict[str, Any]:
    """Parse a JSON object out of raw model output.

    Strips fences first, then falls back to the outermost {...} span when
    the model added prose around the object.

    Raises:
        MalformedResponseError: No JSON object could be decoded
    """
    cleaned = strip_code_fences(raw or "")
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError:
        start = cleaned.find("{")
        end = cleaned.rfind("}")
        if start == -1 or end <= start:
            raise MalformedResponseError("No JSON object in response", raw=raw)
        try:
            data = json.loads(cleaned[start : end + 1])
        except json.JSONDecodeError as e:
            raise MalformedResponseError(f"Invalid JSON in response: {e}", raw=raw) from e

    if not isinstance(data, dict):
        raise MalformedResponseError(
            f"Expected a JSON object, got {type(data).__name__}", raw=raw
        )
    return data


def _validate(model: Type[ModelT], data: Dict[str, Any], raw: str) -> ModelT:
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise MalformedResponseError(
            f"{model.__name__} failed validation: {e.errors()[0].get('msg', e)}",
            raw=raw,
        ) from e


def parse_dynamic_response(raw: str) -> DynamicTurnResponse:
    """Parse a dynamic checklist turn.

    Accepts either the bare turn object or an envelope {"response": {...}}.
    """
    data = parse_json_object(raw)
    if isinstance(data.get("response"), dict):
        data = data["response"]
    return _validate(DynamicTurnResponse, data, raw)


def parse_fixed_step_response(raw: str) -> FixedStepResponse:
    """Parse a fixed-step turn (feedback, suggestion, extracted, brief)."""
    data = parse_json_object(raw)
    if isinstance(data.get("response"), dict):
        data = data["response"]
    return _validate(FixedStepResponse, data, raw)
