"""
Contract Chat Service
Answers questions about a contract, optionally grounding the answer in
external search results.
"""

import logging
from typing import Any, List, Optional

from app.core.config import settings
from app.db.models.analysis_record import AnalysisRecord
from app.db.models.document import Document
from app.schemas.contract_analysis import ChatAnswer, ChatTurn, SearchResultItem
from app.schemas.openai import OpenAIError
from app.schemas.pipeline import PipelineError, PipelineErrorType
from app.services.augmentation import AugmentationDecision, AugmentationReason, AugmentationState, decide_augmentation
from app.services.search_results import extract_search_items, normalize_search_results
from app.services.search_service import SearchError

logger = logging.getLogger(__name__)

CHAT_PROMPT = """You are an expert contract analyst AI assistant. You have access to a complete {contract_label} document and its analysis.

CONTRACT INFORMATION:
- Contract Type: {contract_type}
- Filename: {filename}
- Analysis Score: {score}

CONTRACT TEXT:
{contract_text}
{analysis_block}
CHAT HISTORY:
{history}

USER QUESTION: {question}
{search_block}
INSTRUCTIONS:
1. Answer the user's question based on the actual contract content and analysis
2. Provide specific, accurate information from the contract text
3. If the question is about something not in the contract, say so clearly
4. If the question is unrelated to contracts or this specific contract, politely redirect to contract-related topics
5. Use the analysis data to provide insights when relevant
6. Cite specific sections or clauses when possible

Please provide a helpful response based on the contract content and analysis."""

ANALYSIS_BLOCK = """
ANALYSIS RESULTS:
- Overall Score: {score}/100
- Favorable: {favorable}
- Summary: {summary}
- Key Risks: {risks}
- Key Opportunities: {opportunities}
- Negotiation Points: {negotiation_points}
"""

SEARCH_BLOCK = """
EXTERNAL SEARCH RESULTS:
The following up-to-date information was retrieved from the web for this question.
You DO have access to this external information. Do not say that you cannot access
current or external data. Use these results to answer and cite them as "Source N".

{results}
"""


class ChatService:
    """Conversational stage: one optional search call, then one inference call"""

    def __init__(self, inference: Any, search: Optional[Any] = None, text_limit: Optional[int] = None):
        self.inference = inference
        self.search = search
        self.text_limit = text_limit or settings.CHAT_TEXT_LIMIT

    @property
    def search_available(self) -> bool:
        return self.search is not None and self.search.is_configured()

    async def converse(
        self,
        document: Document,
        analysis: Optional[AnalysisRecord],
        question: str,
        history: Optional[List[ChatTurn]] = None
    ) -> ChatAnswer:
        """
        Answer a question about the document.

        Args:
            document: Document with extracted text
            analysis: Latest analysis record, if any
            question: The user's question
            history: Prior conversation turns, oldest first

        Returns:
            ChatAnswer with the answer text and any sources used

        Raises:
            PipelineError: If inference fails or returns nothing
        """
        decision = await decide_augmentation(question, self.inference, search_available=self.search_available)
        logger.info(f"Chat augmentation for document {document.id}: {decision.state.value} ({decision.reason.value})")

        results_text = None
        sources: List[SearchResultItem] = []
        if decision.augment:
            results_text, sources = await self._retrieve(question)
            if not results_text:
                decision = AugmentationDecision(AugmentationState.NO_AUGMENT, decision.reason)

        prompt = self.build_prompt(document, analysis, question, history or [], results_text)

        try:
            answer = await self.inference.generate(prompt, temperature=settings.CHAT_TEMPERATURE)
        except OpenAIError as e:
            logger.error(f"Chat inference failed for document {document.id}: {e.message}")
            raise PipelineError(
                "The assistant is temporarily unavailable. Please try again later.",
                PipelineErrorType.INFERENCE_TRANSPORT_FAILURE
            )

        if not answer or not answer.strip():
            raise PipelineError("The assistant returned an empty response", PipelineErrorType.INFERENCE_EMPTY)

        answer = answer.strip()
        if decision.augment:
            check_citations(answer, sources)

        return ChatAnswer(
            answer=answer,
            augmented=decision.augment,
            augmentation_reason=decision.reason.value if decision.augment else _no_augment_reason(decision),
            sources=sources if decision.augment else []
        )

    async def _retrieve(self, question: str):
        try:
            payload = await self.search.search(question, limit=settings.SEARCH_MAX_RESULTS)
        except SearchError as e:
            logger.warning(f"Search failed, answering without external results: {e}")
            return None, []

        sources = extract_search_items(payload)
        results_text = normalize_search_results(payload)
        if not results_text:
            logger.info("Search returned no usable results")
        return results_text, sources

    def build_prompt(
        self,
        document: Document,
        analysis: Optional[AnalysisRecord],
        question: str,
        history: List[ChatTurn],
        results_text: Optional[str] = None
    ) -> str:
        contract_type = document.detected_type or (analysis.detected_type if analysis else None)
        score = analysis.score if analysis is not None else None

        return CHAT_PROMPT.format(
            contract_label=contract_type or "contract",
            contract_type=contract_type or "Unknown",
            filename=document.filename or "Unknown",
            score=score if score is not None else "Not analyzed yet",
            contract_text=document.text[:self.text_limit],
            analysis_block=_format_analysis(analysis),
            history="\n".join(f"{turn.role}: {turn.content}" for turn in history) or "(no previous messages)",
            question=question,
            search_block=SEARCH_BLOCK.format(results=results_text) if results_text else ""
        )


def _format_analysis(analysis: Optional[AnalysisRecord]) -> str:
    if analysis is None or not analysis.is_terminal:
        return ""

    risks = ", ".join(
        f"{risk.get('type')} ({risk.get('severity')})" for risk in analysis.risks or []
    )
    opportunities = ", ".join(
        f"{opportunity.get('type')}: {opportunity.get('note') or ''}".rstrip(": ")
        for opportunity in analysis.opportunities or []
    )
    return ANALYSIS_BLOCK.format(
        score=analysis.score,
        favorable="Yes" if analysis.favorable else "No",
        summary=analysis.summary or "",
        risks=risks or "None identified",
        opportunities=opportunities or "None identified",
        negotiation_points=", ".join(analysis.negotiation_points or []) or "None identified"
    )


def _no_augment_reason(decision: AugmentationDecision) -> str:
    if decision.reason in (AugmentationReason.NOT_NEEDED, AugmentationReason.SEARCH_UNAVAILABLE,
                           AugmentationReason.CLASSIFIER_FAILED):
        return decision.reason.value
    return "no_results"


def check_citations(answer: str, sources: List[SearchResultItem]) -> bool:
    """
    Log a warning when an augmented answer references none of its sources.

    Returns:
        True if at least one source label, title or URL appears in the answer
    """
    folded = answer.lower()
    for i, source in enumerate(sources, 1):
        markers = [f"source {i}"]
        if source.title:
            markers.append(source.title.lower())
        if source.url:
            markers.append(source.url.lower())
        if any(marker in folded for marker in markers):
            return True

    if "source" in folded and not sources:
        return True

    logger.warning("Augmented answer does not reference any of the supplied search results")
    return False
