"""
Output Validator
Parses semi-structured inference output into validated analysis payloads.

Inference responses are expected to hold a single JSON object, but often
arrive wrapped in markdown code fences or surrounding prose. Nothing here
raises for bad input: every entry point returns a ValidationOutcome so the
caller decides between a heuristic fallback and a user-facing error.
"""

import json
import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Type

from pydantic import BaseModel, ValidationError

from app.schemas.contract_analysis import AnalysisPayload, ClassificationPayload

logger = logging.getLogger(__name__)

_CODE_FENCE = re.compile(r"```(?:json|JSON)?[ \t]*\n?")
_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")


class ValidationFailureKind(str, Enum):
    """Why inference output could not be accepted"""
    PARSE_ERROR = "parse_error"
    DOMAIN_REJECTION = "domain_rejection"
    SCHEMA_ERROR = "schema_error"


@dataclass
class ValidationFailure:
    kind: ValidationFailureKind
    message: str


@dataclass
class ValidationOutcome:
    """Either a validated payload or a structured failure"""
    value: Optional[BaseModel] = None
    failure: Optional[ValidationFailure] = None

    @property
    def ok(self) -> bool:
        return self.failure is None


def strip_code_fences(text: str) -> str:
    """
    Remove markdown code fences and any prose around the outermost JSON object.

    Args:
        text: Raw inference output

    Returns:
        Text that should contain only the JSON object
    """
    cleaned = _CODE_FENCE.sub("", text.strip()).strip()
    match = _JSON_OBJECT.search(cleaned)
    if match:
        return match.group(0)
    return cleaned


def parse_json_object(text: Optional[str]) -> Dict[str, Any]:
    """
    Parse inference output into a dict.

    Raises:
        ValueError: If the text is empty, not JSON, or not a JSON object
    """
    if not text or not text.strip():
        raise ValueError("Empty response")

    parsed = json.loads(strip_code_fences(text))
    if not isinstance(parsed, dict):
        raise ValueError(f"Expected a JSON object, got {type(parsed).__name__}")
    return parsed


def repair_analysis_fields(data: Dict[str, Any]) -> Dict[str, Any]:
    """Fix common format issues before strict validation"""
    risks = data.get("risks")
    if isinstance(risks, list):
        for risk in risks:
            if isinstance(risk, dict) and isinstance(risk.get("severity"), str):
                risk["severity"] = risk["severity"].strip().lower()
    return data


def _validate(text: Optional[str], model: Type[BaseModel]) -> ValidationOutcome:
    try:
        data = parse_json_object(text)
    except (json.JSONDecodeError, ValueError) as e:
        logger.warning(f"Failed to parse inference output as JSON: {e}")
        return ValidationOutcome(failure=ValidationFailure(ValidationFailureKind.PARSE_ERROR, str(e)))

    # Model judged the source text not to be a contract
    if data.get("error"):
        return ValidationOutcome(failure=ValidationFailure(
            ValidationFailureKind.DOMAIN_REJECTION,
            str(data["error"])
        ))

    if model is AnalysisPayload:
        data = repair_analysis_fields(data)

    try:
        return ValidationOutcome(value=model.model_validate(data))
    except ValidationError as e:
        logger.warning(f"Inference output failed {model.__name__} validation: {e.error_count()} error(s)")
        logger.debug(f"Validation errors: {e.errors()}")
        return ValidationOutcome(failure=ValidationFailure(ValidationFailureKind.SCHEMA_ERROR, str(e)))


def validate_analysis_output(text: Optional[str]) -> ValidationOutcome:
    """
    Validate full-analysis output.

    Required: all seven clause groups, risks, opportunities, a numeric
    score in [0, 100] and negotiation_points. Any violation fails the
    whole record.

    Args:
        text: Raw inference output

    Returns:
        ValidationOutcome holding an AnalysisPayload on success
    """
    return _validate(text, AnalysisPayload)


def validate_classification_output(text: Optional[str]) -> ValidationOutcome:
    """Validate light-analysis output (contract type plus parties)"""
    return _validate(text, ClassificationPayload)
