"""
Pipeline result schemas and error taxonomy
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from app.schemas.contract_analysis import AnalysisOutcome, ChatAnswer, ClassificationResult


class PipelineErrorType(str, Enum):
    """Failure categories surfaced by the contract pipeline"""
    UNAUTHORIZED = "unauthorized"
    NOT_FOUND = "not_found"
    ALREADY_ANALYZED = "already_analyzed"
    DOMAIN_REJECTION = "domain_rejection"
    INFERENCE_EMPTY = "inference_empty"
    INFERENCE_TRANSPORT_FAILURE = "inference_transport_failure"
    INVALID_ANALYSIS = "invalid_analysis"
    PERSISTENCE_FAILURE = "persistence_failure"


class PipelineError(Exception):
    """Pipeline stage failure carrying a user-facing message"""
    def __init__(self, message: str, error_type: PipelineErrorType):
        self.message = message
        self.error_type = error_type
        super().__init__(self.message)


class PipelineResult(BaseModel):
    """Tagged success/failure result returned by every pipeline operation"""
    success: bool = True
    error_type: Optional[PipelineErrorType] = None
    error: Optional[str] = Field(None, description="Human-readable failure message")

    @classmethod
    def failure(cls, error: PipelineError):
        return cls(success=False, error_type=error.error_type, error=error.message)


class ClassifyResult(PipelineResult):
    classification: Optional[ClassificationResult] = None


class AnalyzeResult(PipelineResult):
    analysis: Optional[AnalysisOutcome] = None


class ConverseResult(PipelineResult):
    answer: Optional[ChatAnswer] = None


class PartySelectionResult(PipelineResult):
    party_name: Optional[str] = None
