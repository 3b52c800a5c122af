"""
Contract Classification Service
Light analysis: detects contract type and parties in one inference call,
falling back to pattern matching when the model output is unusable.
"""

import logging
from datetime import datetime, timezone
from typing import Any, List, Optional

from app.core.config import settings
from app.db.models.document import Document
from app.db.repository import AnalysisConflictError
from app.schemas.contract_analysis import (
    CONTRACT_TYPES,
    ClassificationPayload,
    ClassificationResult,
    ContractType,
    Party,
)
from app.schemas.openai import OpenAIError
from app.services.output_validator import validate_classification_output
from app.services.party_extractor import detect_contract_type_from_keywords, extract_parties

logger = logging.getLogger(__name__)

CLASSIFICATION_PROMPT = """You are an expert contract analyst. Analyze the contract text below and provide:

1. CONTRACT TYPE DETECTION:
Determine the EXACT contract type. Use one of these names exactly:
{contract_types}

Key indicators: "employee", "employer", "salary", "benefits", "job duties" = "Employment".
Use "Other" only if none of the types match.

2. PARTY DETECTION:
Identify ALL parties involved in the contract. Look for:
- Party names (usually at the beginning: "This Agreement is between [Party A] and [Party B]")
- Company names, individual names
- Roles: Employer, Employee, Client, Vendor, Service Provider, Licensor, Licensee, Buyer, Seller, etc.

Return ONLY a valid JSON object with this exact structure:
{{
  "detected_type": "Employment",
  "confidence": 0.95,
  "reasoning": "Short explanation of the indicators that led to this type",
  "parties": [
    {{"name": "Full legal name", "role": "Employer", "description": "Brief description of this party's role"}}
  ]
}}

If no parties are found, return "parties": [].

Contract text:
{contract_text}

Return ONLY the JSON object, nothing else."""


class ClassificationService:
    """
    Classification stage ("light analysis").

    Never surfaces inference or parse failures: the result is advisory, so
    any unusable model output is replaced by keyword and pattern heuristics.
    Persistence failures propagate to the caller.
    """

    def __init__(self, inference: Any, repository: Any, text_limit: Optional[int] = None):
        """
        Initialize classification stage.

        Args:
            inference: Inference service exposing generate()
            repository: ContractRepository (or compatible) for persistence
            text_limit: Characters of document text sent to the model
        """
        self.inference = inference
        self.repository = repository
        self.text_limit = text_limit or settings.CLASSIFICATION_TEXT_LIMIT

    def build_prompt(self, text: str) -> str:
        return CLASSIFICATION_PROMPT.format(
            contract_types="\n".join(f"- {name}" for name in CONTRACT_TYPES),
            contract_text=text[:self.text_limit]
        )

    async def classify(self, document: Document) -> ClassificationResult:
        """
        Detect contract type and parties, then upsert the partial analysis record.

        Args:
            document: Document with extracted text

        Returns:
            ClassificationResult (heuristic when the model output was unusable)
        """
        result = await self._infer(document.text)
        await self._persist(document, result)
        return result

    async def _infer(self, text: str) -> ClassificationResult:
        try:
            response = await self.inference.generate(
                self.build_prompt(text),
                response_format="json",
                temperature=settings.CLASSIFICATION_TEMPERATURE
            )
        except OpenAIError as e:
            logger.warning(f"Classification inference failed ({e.error_type.value}), using heuristics")
            return self._fallback(text)

        outcome = validate_classification_output(response)
        if not outcome.ok:
            logger.warning(
                f"Classification output unusable ({outcome.failure.kind.value}), using heuristics"
            )
            logger.debug(f"Raw classification response: {(response or '')[:500]}")
            return self._fallback(text)

        payload: ClassificationPayload = outcome.value
        return ClassificationResult(
            detected_type=payload.detected_type,
            confidence=payload.confidence,
            reasoning=payload.reasoning,
            parties=payload.parties
        )

    def _fallback(self, text: str) -> ClassificationResult:
        detected_type = detect_contract_type_from_keywords(text)
        reasoning = (
            "Detected from contract text keywords"
            if detected_type != ContractType.OTHER.value
            else "Contract type could not be determined"
        )
        return ClassificationResult(
            detected_type=detected_type,
            confidence=0.0,
            reasoning=reasoning,
            parties=extract_parties(text),
            used_fallback=True
        )

    async def _persist(self, document: Document, result: ClassificationResult) -> None:
        parties = _serialize_parties(result.parties)
        now = datetime.now(timezone.utc)

        record = await self.repository.get_latest_analysis(document.id)
        if record is None:
            try:
                await self.repository.insert_analysis(
                    document.id,
                    detected_type=result.detected_type,
                    parties=parties,
                    parties_detected_at=now if parties else None,
                    score=None,
                    favorable=None
                )
                logger.info(f"Created partial analysis for document {document.id}")
                return
            except AnalysisConflictError:
                # A concurrent request created it first; merge into that one
                record = await self.repository.get_latest_analysis(document.id)
                if record is None:
                    raise

        if record.is_terminal:
            logger.info(f"Document {document.id} already fully analyzed, classification not stored")
            return

        fields = {"detected_type": result.detected_type}
        if parties:
            fields["parties"] = parties
            fields["parties_detected_at"] = now

        updated = await self.repository.update_partial_analysis(record.id, **fields)
        if updated:
            logger.info(f"Updated partial analysis {record.id} for document {document.id}")
        else:
            logger.info(f"Analysis {record.id} became terminal, classification not stored")


def _serialize_parties(parties: List[Party]) -> List[dict]:
    return [party.model_dump() for party in parties]
