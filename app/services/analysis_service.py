"""
Contract Analysis Service
Full analysis: clauses, risks, opportunities, score, summary,
recommendations and negotiation points from a single inference call.
"""

import logging
from typing import Any, Dict, Optional, Tuple

from app.core.config import settings
from app.db.models.document import Document
from app.db.repository import AnalysisConflictError
from app.schemas.contract_analysis import AnalysisOutcome, AnalysisPayload, ContractType
from app.schemas.openai import OpenAIError
from app.schemas.pipeline import PipelineError, PipelineErrorType
from app.services.output_validator import ValidationFailureKind, validate_analysis_output

logger = logging.getLogger(__name__)

ANALYSIS_PROMPT = """You are an expert contract analyst. Analyze the provided text and determine if it's a valid contract document.

FIRST: Validate if this is actually a contract document. If the text appears to be:
- Random text, spam, or unrelated content
- Incomplete or corrupted
- Not a legal document
- A different type of document (invoice, receipt, etc.)

Then return: {{"error": "This document does not appear to be a valid contract. Please upload a proper contract document."}}

IF IT IS A VALID CONTRACT, proceed with analysis and return STRICT JSON matching the structure below.

CONTRACT TYPE DETECTION:
detected_type must be exactly one of these names:

EMPLOYMENT & HR:
- Employment: employment terms, job duties, salary, benefits
- Independent Contractor: contractor terms, project scope, payment for services
- Consulting Agreement: consulting services, deliverables, professional advice
- Non-Compete Agreement: restrictive covenants, competition limitations

CONFIDENTIALITY & IP:
- NDA: confidentiality, non-disclosure, proprietary information
- IP Assignment: intellectual property ownership, patent or copyright transfers
- Trade Secret Agreement: trade secret protection obligations

SERVICE & CONSULTING:
- MSA: master service agreement, general terms, service framework
- Statement of Work: specific deliverables, project scope under an MSA
- Professional Services: professional services provision and terms

TECHNOLOGY & SOFTWARE:
- SaaS: software as a service, subscription terms
- Software License: software usage rights and restrictions
- API Agreement: application programming interface usage terms
- Cloud Services: cloud hosting and infrastructure services
- Data Processing Agreement: data handling, privacy, GDPR terms

REAL ESTATE & PROPERTY:
- Lease Agreement: property rental, duration, rent
- Purchase Agreement: sale of property or goods, closing conditions
- Property Management: property oversight, maintenance, tenant relations
- Construction Contract: building work, timelines, specifications

FINANCIAL & INVESTMENT:
- Loan Agreement: lending terms, interest rates, repayment schedule
- Investment Agreement: investment terms, equity, returns
- Financial Services: financial or banking services

BUSINESS & COMMERCIAL:
- Partnership Agreement: business partnership, profit sharing
- Joint Venture: collaborative business arrangement, shared resources
- Vendor Agreement: supplier terms, product delivery
- Distribution Agreement: product distribution, territory, exclusivity
- Supply Agreement: supply chain, recurring deliveries

HEALTHCARE, EDUCATION & PUBLIC:
- Medical Services: healthcare provision, patient care
- Research Agreement: research collaboration, protocols
- Clinical Trial Agreement: clinical trial conduct and sponsorship
- Training Agreement: educational or training services
- Government Contract: public sector procurement, compliance
- Grant Agreement: funding terms, reporting requirements

- Other: any contract type not listed above

REQUIRED JSON STRUCTURE:
{{
  "detected_type": "one of the names above",
  "clauses": {{
    "payment": {{"amount": null, "schedule": null, "late_fees": null}},
    "liability": {{"cap": null, "exclusions": null, "indemnity": null}},
    "termination": {{"notice": null, "for_cause": null, "without_cause": null, "auto_renewal": null}},
    "confidentiality": {{"scope": null, "duration": null, "carve_outs": null}},
    "ip": {{"ownership": null, "license": null, "derivatives": null}},
    "law": {{"governing_law": null, "jurisdiction": null, "dispute_resolution": null}},
    "renewal": {{"term_length": null, "renewal_window": null, "conditions": null}}
  }},
  "risks": [{{"type": "...", "severity": "high", "excerpt": "...", "note": "..."}}],
  "opportunities": [{{"type": "...", "excerpt": "...", "note": "..."}}],
  "score": 0,
  "summary": "...",
  "recommendations": "...",
  "negotiation_points": ["..."]
}}

DETAILED ANALYSIS REQUIREMENTS:
- clauses: all seven groups must be present; use null for any term the contract does not specify
- score: risk score from 0-100 (0 = extremely risky, 100 = very favorable)
- summary: 2-3 sentence summary of the contract's key points and overall assessment
- recommendations: 2-3 actionable recommendations
- risks: identified risks with severity and analysis
- opportunities: identified opportunities with analysis
- negotiation_points: specific negotiation points with actionable advice

RISK ANALYSIS GUIDANCE:
You MUST identify at least one risk in EVERY contract. Risks are terms that could harm the client or create liability:
unfavorable payment terms, weak liability protections, unreasonable termination clauses, unfavorable dispute
resolution, weak IP protections, unreasonable confidentiality obligations, unfavorable renewal terms.

OPPORTUNITIES ANALYSIS GUIDANCE:
You MUST identify at least one opportunity in EVERY contract. Opportunities are terms that benefit the client or
provide leverage: favorable payment terms, strong liability protections, flexible termination, favorable dispute
resolution, strong IP protections, favorable renewal terms. If no obvious opportunity exists, identify where the
contract could be improved to create one.

CRITICAL FORMAT REQUIREMENTS:
- All severity values in risks MUST be exactly "high", "medium", or "low" (lowercase only)
- Opportunities do NOT have severity values
- JSON must be valid and parseable
- No HTML tags or special characters in text fields

CONTRACT TEXT TO ANALYZE:
{contract_text}
{party_context}
Analyze this contract and return the JSON response."""

PARTY_CONTEXT = """
IMPORTANT: The user represents the party "{party}" in this contract.
Provide analysis, risks, opportunities and recommendations from the perspective of this party.
- Risks should be risks TO "{party}".
- Opportunities should be opportunities FOR "{party}".
- Negotiation points should be suggestions for "{party}" to improve the contract.
- The score should reflect how favorable the contract is FOR "{party}".
"""


class AnalysisService:
    """
    Full analysis stage.

    There is no heuristic fallback here: a malformed analysis is not safe to
    approximate, so every post-inference failure is raised as a PipelineError.
    """

    def __init__(
        self,
        inference: Any,
        repository: Any,
        text_limit: Optional[int] = None,
        favorable_threshold: Optional[int] = None
    ):
        """
        Initialize full analysis stage.

        Args:
            inference: Inference service exposing generate()
            repository: ContractRepository (or compatible) for persistence
            text_limit: Characters of document text sent to the model
            favorable_threshold: Minimum score considered favorable
        """
        self.inference = inference
        self.repository = repository
        self.text_limit = text_limit or settings.ANALYSIS_TEXT_LIMIT
        self.favorable_threshold = (
            favorable_threshold if favorable_threshold is not None else settings.FAVORABLE_SCORE_THRESHOLD
        )

    def build_prompt(self, document: Document) -> str:
        party_context = ""
        if document.user_selected_party:
            party_context = PARTY_CONTEXT.format(party=document.user_selected_party)
        return ANALYSIS_PROMPT.format(
            contract_text=document.text[:self.text_limit],
            party_context=party_context
        )

    async def analyze(self, document: Document) -> AnalysisOutcome:
        """
        Run full analysis and persist the terminal record.

        Args:
            document: Document with extracted text

        Returns:
            AnalysisOutcome with the record id, score and derived fields

        Raises:
            PipelineError: On already analyzed, empty/failed inference,
                domain rejection or invalid output
        """
        existing = await self.repository.get_latest_analysis(document.id)
        if existing is not None and existing.is_terminal:
            raise PipelineError(
                "Analysis already exists for this contract",
                PipelineErrorType.ALREADY_ANALYZED
            )

        try:
            response = await self.inference.generate(
                self.build_prompt(document),
                response_format="json",
                temperature=settings.ANALYSIS_TEMPERATURE
            )
        except OpenAIError as e:
            logger.error(f"Analysis inference failed for document {document.id}: {e.message}")
            raise PipelineError(
                "The analysis service is temporarily unavailable. Please try again later.",
                PipelineErrorType.INFERENCE_TRANSPORT_FAILURE
            )

        if not response or not response.strip():
            raise PipelineError("The analysis service returned an empty response", PipelineErrorType.INFERENCE_EMPTY)

        outcome = validate_analysis_output(response)
        if not outcome.ok:
            if outcome.failure.kind == ValidationFailureKind.DOMAIN_REJECTION:
                logger.info(f"Document {document.id} rejected as non-contract")
                raise PipelineError(outcome.failure.message, PipelineErrorType.DOMAIN_REJECTION)
            logger.error(f"Invalid analysis output for document {document.id}: {outcome.failure.kind.value}")
            raise PipelineError("Failed to produce a valid contract analysis", PipelineErrorType.INVALID_ANALYSIS)

        payload: AnalysisPayload = outcome.value
        fields = self.build_record_fields(payload)

        if existing is not None:
            analysis_id, stored = await self._update_partial(existing, payload, fields)
        else:
            analysis_id, stored = await self._insert(document.id, payload, fields)

        logger.info(f"Stored analysis {analysis_id} for document {document.id} (score: {fields['score']})")
        return AnalysisOutcome(
            analysis_id=analysis_id,
            score=fields["score"],
            favorable=fields["favorable"],
            detected_type=stored["detected_type"]
        )

    def build_record_fields(self, payload: AnalysisPayload) -> Dict[str, Any]:
        """
        Derive the persisted fields from a validated payload.

        favorable follows the score threshold; summary and recommendations are
        templated from the score when the model omitted them.
        """
        score = payload.rounded_score
        favorable = score >= self.favorable_threshold
        summary = payload.summary or f"Contract analysis completed with a score of {score}/100."
        recommendations = payload.recommendations or (
            f"Based on the score of {score}/100, "
            f"{'this contract appears favorable' if favorable else 'review the identified risks and opportunities'}."
        )
        return {
            "detected_type": payload.detected_type or ContractType.OTHER.value,
            "score": score,
            "favorable": favorable,
            "clauses": payload.clauses.model_dump(mode="json"),
            "risks": [risk.model_dump(mode="json") for risk in payload.risks],
            "opportunities": [opportunity.model_dump(mode="json") for opportunity in payload.opportunities],
            "summary": summary,
            "recommendations": recommendations,
            "negotiation_points": payload.negotiation_points,
        }

    async def _update_partial(
        self, existing: Any, payload: AnalysisPayload, fields: Dict[str, Any]
    ) -> Tuple[int, Dict[str, Any]]:
        fields = dict(fields)
        # Keep parties from classification unless the model supplied new ones
        if payload.parties:
            fields["parties"] = [party.model_dump() for party in payload.parties]
        if existing.detected_type and fields["detected_type"] == ContractType.OTHER.value:
            fields["detected_type"] = existing.detected_type

        updated = await self.repository.update_partial_analysis(existing.id, **fields)
        if not updated:
            raise PipelineError("Analysis already exists for this contract", PipelineErrorType.ALREADY_ANALYZED)
        return existing.id, fields

    async def _insert(
        self, document_id: int, payload: AnalysisPayload, fields: Dict[str, Any]
    ) -> Tuple[int, Dict[str, Any]]:
        fields = dict(fields)
        fields["parties"] = [party.model_dump() for party in payload.parties or []]
        try:
            record = await self.repository.insert_analysis(document_id, **fields)
        except AnalysisConflictError:
            raise PipelineError("Analysis already exists for this contract", PipelineErrorType.ALREADY_ANALYZED)
        return record.id, fields
