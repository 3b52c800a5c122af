"""
Contract Analysis schemas for structured output

Inference output is untrusted, so the models here carry the field-level
repairs (case-folded severities, "unspecified" clause text, vocabulary
collapse to "Other") that run before strict validation.
"""

import logging
from enum import Enum
from typing import Annotated, Any, List, Literal, Optional

from pydantic import BaseModel, Field, BeforeValidator, field_validator

logger = logging.getLogger(__name__)

UNSPECIFIED = "unspecified"
DEFAULT_PARTY_ROLE = "Party"
DEFAULT_PARTY_DESCRIPTION = "Party in the contract"


class ContractType(str, Enum):
    """Closed vocabulary of contract categories"""
    # Employment & HR
    EMPLOYMENT = "Employment"
    INDEPENDENT_CONTRACTOR = "Independent Contractor"
    CONSULTING_AGREEMENT = "Consulting Agreement"
    NON_COMPETE_AGREEMENT = "Non-Compete Agreement"
    # Confidentiality & IP
    NDA = "NDA"
    IP_ASSIGNMENT = "IP Assignment"
    TRADE_SECRET_AGREEMENT = "Trade Secret Agreement"
    # Service & Consulting
    MSA = "MSA"
    STATEMENT_OF_WORK = "Statement of Work"
    PROFESSIONAL_SERVICES = "Professional Services"
    # Technology & Software
    SAAS = "SaaS"
    SOFTWARE_LICENSE = "Software License"
    API_AGREEMENT = "API Agreement"
    CLOUD_SERVICES = "Cloud Services"
    DATA_PROCESSING_AGREEMENT = "Data Processing Agreement"
    # Real Estate & Property
    LEASE_AGREEMENT = "Lease Agreement"
    PURCHASE_AGREEMENT = "Purchase Agreement"
    PROPERTY_MANAGEMENT = "Property Management"
    CONSTRUCTION_CONTRACT = "Construction Contract"
    # Financial & Investment
    LOAN_AGREEMENT = "Loan Agreement"
    INVESTMENT_AGREEMENT = "Investment Agreement"
    FINANCIAL_SERVICES = "Financial Services"
    # Business & Commercial
    PARTNERSHIP_AGREEMENT = "Partnership Agreement"
    JOINT_VENTURE = "Joint Venture"
    VENDOR_AGREEMENT = "Vendor Agreement"
    DISTRIBUTION_AGREEMENT = "Distribution Agreement"
    SUPPLY_AGREEMENT = "Supply Agreement"
    # Healthcare & Medical
    MEDICAL_SERVICES = "Medical Services"
    RESEARCH_AGREEMENT = "Research Agreement"
    CLINICAL_TRIAL_AGREEMENT = "Clinical Trial Agreement"
    # Education & Training
    TRAINING_AGREEMENT = "Training Agreement"
    # Government & Public
    GOVERNMENT_CONTRACT = "Government Contract"
    GRANT_AGREEMENT = "Grant Agreement"
    OTHER = "Other"


CONTRACT_TYPES = [contract_type.value for contract_type in ContractType]
_CONTRACT_TYPES_BY_FOLDED_NAME = {name.casefold(): name for name in CONTRACT_TYPES}


def normalize_contract_type(value: Any) -> str:
    """
    Map a model-supplied contract type onto the closed vocabulary.

    Exact names win, then a case-insensitive match; anything else
    collapses to "Other".
    """
    if not isinstance(value, str) or not value.strip():
        return ContractType.OTHER.value

    candidate = value.strip()
    if candidate in CONTRACT_TYPES:
        return candidate

    folded = _CONTRACT_TYPES_BY_FOLDED_NAME.get(candidate.casefold())
    if folded:
        return folded

    logger.warning(f"Invalid detected type: {candidate!r}, defaulting to Other")
    return ContractType.OTHER.value


class Severity(str, Enum):
    """Risk severity levels"""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


def _clause_text(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, str):
        return value.strip() or UNSPECIFIED
    if isinstance(value, (int, float)):
        return str(value)
    return value


def _clause_flag(value: Any) -> Any:
    if isinstance(value, str):
        folded = value.strip().lower()
        if folded in ("true", "yes", "y", "1"):
            return True
        if folded in ("false", "no", "n", "0"):
            return False
        return None
    return value


ClauseText = Annotated[Optional[str], BeforeValidator(_clause_text)]
ClauseFlag = Annotated[Optional[bool], BeforeValidator(_clause_flag)]


class PaymentClause(BaseModel):
    amount: ClauseText = None
    schedule: ClauseText = None
    late_fees: ClauseText = None


class LiabilityClause(BaseModel):
    cap: ClauseText = None
    exclusions: ClauseText = None
    indemnity: ClauseText = None


class TerminationClause(BaseModel):
    notice: ClauseText = None
    for_cause: ClauseText = None
    without_cause: ClauseText = None
    auto_renewal: ClauseFlag = None


class ConfidentialityClause(BaseModel):
    scope: ClauseText = None
    duration: ClauseText = None
    carve_outs: ClauseText = None


class IPClause(BaseModel):
    ownership: ClauseText = None
    license: ClauseText = None
    derivatives: ClauseText = None


class GoverningLawClause(BaseModel):
    governing_law: ClauseText = None
    jurisdiction: ClauseText = None
    dispute_resolution: ClauseText = None


class RenewalClause(BaseModel):
    term_length: ClauseText = None
    renewal_window: ClauseText = None
    conditions: ClauseText = None


class Clauses(BaseModel):
    """The seven clause groups; every group must be present"""
    payment: PaymentClause
    liability: LiabilityClause
    termination: TerminationClause
    confidentiality: ConfidentialityClause
    ip: IPClause
    law: GoverningLawClause
    renewal: RenewalClause


class Party(BaseModel):
    """A contract party"""
    name: str = Field(..., min_length=1)
    role: str = DEFAULT_PARTY_ROLE
    description: str = DEFAULT_PARTY_DESCRIPTION

    @field_validator("name", mode="before")
    @classmethod
    def strip_name(cls, v):
        return v.strip() if isinstance(v, str) else v

    @field_validator("role", mode="before")
    @classmethod
    def default_role(cls, v):
        if not isinstance(v, str) or not v.strip():
            return DEFAULT_PARTY_ROLE
        return v.strip()

    @field_validator("description", mode="before")
    @classmethod
    def default_description(cls, v):
        if not isinstance(v, str) or not v.strip():
            return DEFAULT_PARTY_DESCRIPTION
        return v.strip()


def _clean_parties(value: Any) -> List[Any]:
    """Drop party entries without a usable name"""
    if not isinstance(value, list):
        return []
    return [
        party for party in value
        if isinstance(party, dict)
        and isinstance(party.get("name"), str)
        and party["name"].strip()
    ]


class Risk(BaseModel):
    type: str
    severity: Severity
    excerpt: Optional[str] = None
    note: Optional[str] = None

    @field_validator("severity", mode="before")
    @classmethod
    def fold_severity(cls, v):
        return v.strip().lower() if isinstance(v, str) else v


class Opportunity(BaseModel):
    type: str
    excerpt: Optional[str] = None
    note: Optional[str] = None


class AnalysisPayload(BaseModel):
    """Validated full-analysis output from the inference service"""
    detected_type: Optional[str] = None
    clauses: Clauses
    risks: List[Risk]
    opportunities: List[Opportunity]
    score: float = Field(..., ge=0, le=100)
    summary: Optional[str] = None
    recommendations: Optional[str] = None
    negotiation_points: List[str]
    parties: Optional[List[Party]] = None

    @field_validator("detected_type", mode="before")
    @classmethod
    def collapse_detected_type(cls, v):
        return None if v is None else normalize_contract_type(v)

    @field_validator("score", mode="before")
    @classmethod
    def reject_boolean_score(cls, v):
        if isinstance(v, bool):
            raise ValueError("score must be a number")
        return v

    @field_validator("summary", "recommendations", mode="before")
    @classmethod
    def join_text(cls, v):
        if isinstance(v, list):
            v = "\n".join(str(item) for item in v if item)
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("parties", mode="before")
    @classmethod
    def clean_parties(cls, v):
        return None if v is None else _clean_parties(v)

    @property
    def rounded_score(self) -> int:
        return int(round(self.score))


class ClassificationPayload(BaseModel):
    """Validated light-analysis output (contract type plus parties)"""
    detected_type: str = ContractType.OTHER.value
    confidence: float = 0.0
    reasoning: str = ""
    parties: List[Party] = Field(default_factory=list)

    @field_validator("detected_type", mode="before")
    @classmethod
    def collapse_detected_type(cls, v):
        return normalize_contract_type(v)

    @field_validator("confidence", mode="before")
    @classmethod
    def clamp_confidence(cls, v):
        if isinstance(v, bool) or not isinstance(v, (int, float)):
            return 0.0
        return min(max(float(v), 0.0), 1.0)

    @field_validator("reasoning", mode="before")
    @classmethod
    def default_reasoning(cls, v):
        return v if isinstance(v, str) else ""

    @field_validator("parties", mode="before")
    @classmethod
    def clean_parties(cls, v):
        return _clean_parties(v)


class ClassificationResult(BaseModel):
    """Outcome of the classification stage"""
    detected_type: str
    confidence: float = 0.0
    reasoning: str = ""
    parties: List[Party] = Field(default_factory=list)
    used_fallback: bool = False


class AnalysisOutcome(BaseModel):
    """Outcome of the full analysis stage"""
    analysis_id: int
    score: int
    favorable: bool
    detected_type: str


class ChatTurn(BaseModel):
    """One message of a conversation transcript"""
    role: Literal["user", "assistant"]
    content: str


class SearchResultItem(BaseModel):
    """A normalized external search result"""
    title: str = ""
    content: str = ""
    url: Optional[str] = None


class ChatAnswer(BaseModel):
    """Answer produced by the conversational stage"""
    answer: str
    augmented: bool = False
    augmentation_reason: str = "none"
    sources: List[SearchResultItem] = Field(default_factory=list)
