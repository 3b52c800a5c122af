"""
Augmentation decision for contract chat.

Decides whether a chat question should be answered with external search
results. Deterministic checks run first; the inference-backed classifier
is only consulted when neither a search cue nor an external-fact keyword
is present.
"""

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from app.core.config import settings
from app.schemas.openai import OpenAIError

logger = logging.getLogger(__name__)

SEARCH_CUES = (
    "search", "online", "web", "internet", "google", "look up", "lookup", "browse",
)

EXTERNAL_FACT_KEYWORDS = (
    # Current figures
    "current", "currently", "latest", "today", "this year", "nowadays", "up to date",
    # Rates and money
    "rate", "rates", "tax", "taxes", "interest", "inflation", "exchange rate",
    "minimum wage", "market rate", "market value", "salary range",
    # Benchmarks
    "benchmark", "industry standard", "typical", "average", "market standard", "compare to",
    # Legal and regulatory
    "law", "laws", "legal", "legally", "regulation", "regulations", "regulatory", "statute",
    "statutory", "compliance", "compliant", "enforceable", "court", "case law", "gdpr",
    # Calculations
    "calculate", "calculation", "convert", "conversion",
)

DECISION_PROMPT = """You are routing questions for a contract assistant.

Decide whether answering the question below requires information that is NOT
contained in the contract itself (for example current rates, laws or
regulations, market benchmarks, or other external facts).

Question: {question}

Answer with exactly one word: yes or no."""


def _compile_terms(terms) -> "re.Pattern[str]":
    alternation = "|".join(re.escape(term).replace(r"\ ", r"\s+") for term in terms)
    return re.compile(rf"\b(?:{alternation})\b", re.IGNORECASE)


_SEARCH_CUE_PATTERN = _compile_terms(SEARCH_CUES)
_EXTERNAL_FACT_PATTERN = _compile_terms(EXTERNAL_FACT_KEYWORDS)


class AugmentationState(str, Enum):
    NO_AUGMENT = "no_augment"
    AUGMENT = "augment"


class AugmentationReason(str, Enum):
    USER_REQUEST = "user_request"
    KEYWORD = "keyword"
    CLASSIFIER = "classifier"
    CLASSIFIER_FAILED = "classifier_failed"
    NOT_NEEDED = "not_needed"
    SEARCH_UNAVAILABLE = "search_unavailable"


@dataclass
class AugmentationDecision:
    state: AugmentationState
    reason: AugmentationReason

    @property
    def augment(self) -> bool:
        return self.state == AugmentationState.AUGMENT


def has_search_cue(question: str) -> bool:
    """True if the user explicitly asked for a search"""
    return bool(_SEARCH_CUE_PATTERN.search(question or ""))


def has_external_fact_keyword(question: str) -> bool:
    """True if the question mentions externally verifiable facts"""
    return bool(_EXTERNAL_FACT_PATTERN.search(question or ""))


def parse_yes_no(answer: Optional[str]) -> bool:
    """
    Read a yes/no classifier answer.

    Raises:
        ValueError: If the answer is neither yes nor no
    """
    words = re.findall(r"[a-z]+", (answer or "").lower())
    if not words:
        raise ValueError("Empty classifier answer")
    if words[0] == "yes":
        return True
    if words[0] == "no":
        return False
    raise ValueError(f"Unexpected classifier answer: {answer[:50]!r}")


async def decide_augmentation(
    question: str,
    inference: Any,
    search_available: bool = True
) -> AugmentationDecision:
    """
    Decide whether to augment a chat answer with external search.

    Order:
    1. Explicit search cue in the question -> AUGMENT
    2. External-fact keyword -> AUGMENT
    3. Cheap yes/no inference call; on failure keep the keyword result

    Args:
        question: The user's question
        inference: Inference service exposing generate()
        search_available: False when no search service is configured

    Returns:
        AugmentationDecision with the state and the rule that produced it
    """
    if not search_available:
        return AugmentationDecision(AugmentationState.NO_AUGMENT, AugmentationReason.SEARCH_UNAVAILABLE)

    if has_search_cue(question):
        return AugmentationDecision(AugmentationState.AUGMENT, AugmentationReason.USER_REQUEST)

    if has_external_fact_keyword(question):
        return AugmentationDecision(AugmentationState.AUGMENT, AugmentationReason.KEYWORD)

    try:
        answer = await inference.generate(
            DECISION_PROMPT.format(question=question),
            model=settings.OPENAI_DECISION_MODEL,
            temperature=0.0,
            max_tokens=3
        )
        needs_external = parse_yes_no(answer)
    except (OpenAIError, ValueError) as e:
        # No keyword matched above, so the fallback is NO_AUGMENT
        logger.warning(f"Augmentation classifier failed, not augmenting: {e}")
        return AugmentationDecision(AugmentationState.NO_AUGMENT, AugmentationReason.CLASSIFIER_FAILED)

    if needs_external:
        return AugmentationDecision(AugmentationState.AUGMENT, AugmentationReason.CLASSIFIER)
    return AugmentationDecision(AugmentationState.NO_AUGMENT, AugmentationReason.NOT_NEEDED)
