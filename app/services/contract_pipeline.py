"""
Contract Intelligence Pipeline
Coordinates classification, full analysis and chat for one caller:
Document text → Classification (partial record) → Full Analysis (terminal record) → Chat
"""

import logging
from typing import Any, List, Optional

from sqlalchemy.exc import SQLAlchemyError

from app.core.security import is_document_owner
from app.db.models.document import Document
from app.schemas.contract_analysis import ChatTurn, ContractType
from app.schemas.pipeline import (
    AnalyzeResult,
    ClassifyResult,
    ConverseResult,
    PartySelectionResult,
    PipelineError,
    PipelineErrorType,
)
from app.services.analysis_service import AnalysisService
from app.services.chat_service import ChatService
from app.services.classification_service import ClassificationService

logger = logging.getLogger(__name__)

PERSISTENCE_FAILURE_MESSAGE = "Failed to save analysis results. Please try again."


class ContractPipeline:
    """
    Pipeline for contract intelligence requests.

    Every public operation returns a tagged result instead of raising:
    stage failures (PipelineError) and database errors are converted into
    success=False results with a human-readable message.

    Steps per operation:
    1. Load the document and check the caller owns it
    2. Require extracted text
    3. Run the stage
    4. Post-step: denormalize the detected type onto the document
    """

    def __init__(
        self,
        repository: Any,
        inference: Any,
        search: Optional[Any] = None,
        user_id: Optional[str] = None
    ):
        """
        Initialize pipeline.

        Args:
            repository: ContractRepository (or compatible) for persistence
            inference: Inference service exposing generate()
            search: Optional search service for chat augmentation
            user_id: Caller identity; None means unauthenticated
        """
        self.repository = repository
        self.user_id = user_id
        self.classification_service = ClassificationService(inference, repository)
        self.analysis_service = AnalysisService(inference, repository)
        self.chat_service = ChatService(inference, search=search)

    async def classify(self, document_id: int) -> ClassifyResult:
        """Detect contract type and parties, creating or updating the partial record"""
        try:
            document = await self._load_document(document_id, require_text=True)
            classification = await self.classification_service.classify(document)
        except PipelineError as e:
            return self._failure(ClassifyResult, "classify", document_id, e)
        except SQLAlchemyError as e:
            logger.error(f"Database error classifying document {document_id}: {e}")
            return self._failure(ClassifyResult, "classify", document_id, _persistence_error())

        await self._denormalize_type(document, classification.detected_type)
        logger.info(
            f"Classified document {document_id} as {classification.detected_type} "
            f"({len(classification.parties)} parties, fallback={classification.used_fallback})"
        )
        return ClassifyResult(classification=classification)

    async def analyze(self, document_id: int) -> AnalyzeResult:
        """Run the full analysis and store the terminal record"""
        try:
            document = await self._load_document(document_id, require_text=True)
            analysis = await self.analysis_service.analyze(document)
        except PipelineError as e:
            return self._failure(AnalyzeResult, "analyze", document_id, e)
        except SQLAlchemyError as e:
            logger.error(f"Database error analyzing document {document_id}: {e}")
            return self._failure(AnalyzeResult, "analyze", document_id, _persistence_error())

        await self._denormalize_type(document, analysis.detected_type)
        return AnalyzeResult(analysis=analysis)

    async def converse(
        self,
        document_id: int,
        question: str,
        history: Optional[List[ChatTurn]] = None
    ) -> ConverseResult:
        """Answer a question about the document, with optional search augmentation"""
        try:
            document = await self._load_document(document_id, require_text=True)
            analysis = await self.repository.get_latest_analysis(document.id)
            answer = await self.chat_service.converse(document, analysis, question, history or [])
        except PipelineError as e:
            return self._failure(ConverseResult, "converse", document_id, e)
        except SQLAlchemyError as e:
            logger.error(f"Database error during chat for document {document_id}: {e}")
            return self._failure(
                ConverseResult, "converse", document_id,
                PipelineError("Failed to load contract data. Please try again.", PipelineErrorType.PERSISTENCE_FAILURE)
            )

        return ConverseResult(answer=answer)

    async def get_user_party(self, document_id: int) -> PartySelectionResult:
        """Return the party the caller represents in this contract, if any"""
        try:
            document = await self._load_document(document_id)
        except PipelineError as e:
            return self._failure(PartySelectionResult, "get_user_party", document_id, e)
        except SQLAlchemyError as e:
            logger.error(f"Database error loading party selection for document {document_id}: {e}")
            return self._failure(PartySelectionResult, "get_user_party", document_id, _persistence_error())

        return PartySelectionResult(party_name=document.user_selected_party)

    async def select_user_party(self, document_id: int, party_name: Optional[str]) -> PartySelectionResult:
        """Record which party the caller represents (None or blank clears it)"""
        party_name = party_name.strip() if party_name else None
        try:
            await self._load_document(document_id)
            await self.repository.set_user_selected_party(document_id, party_name or None)
        except PipelineError as e:
            return self._failure(PartySelectionResult, "select_user_party", document_id, e)
        except SQLAlchemyError as e:
            logger.error(f"Database error saving party selection for document {document_id}: {e}")
            return self._failure(
                PartySelectionResult, "select_user_party", document_id,
                PipelineError("Failed to save party selection. Please try again.", PipelineErrorType.PERSISTENCE_FAILURE)
            )

        logger.info(f"Saved party selection for document {document_id}")
        return PartySelectionResult(party_name=party_name or None)

    async def _load_document(self, document_id: int, require_text: bool = False) -> Document:
        if self.user_id is None:
            raise PipelineError("Authentication required", PipelineErrorType.UNAUTHORIZED)

        document = await self.repository.get_document(document_id)
        if document is None:
            raise PipelineError("Contract not found", PipelineErrorType.NOT_FOUND)

        if not is_document_owner(document, self.user_id):
            logger.warning(f"User {self.user_id} denied access to document {document_id}")
            raise PipelineError("You do not have access to this contract", PipelineErrorType.UNAUTHORIZED)

        if require_text and not (document.text or "").strip():
            raise PipelineError("Contract text not found", PipelineErrorType.NOT_FOUND)

        return document

    async def _denormalize_type(self, document: Document, detected_type: Optional[str]) -> None:
        """Copy a confident type onto the document; failures never affect the result"""
        if document.detected_type or not detected_type or detected_type == ContractType.OTHER.value:
            return

        try:
            if await self.repository.set_document_type_if_unset(document.id, detected_type):
                logger.info(f"Set document {document.id} type to {detected_type}")
        except SQLAlchemyError:
            logger.error(f"Failed to update type on document {document.id}", exc_info=True)

    def _failure(self, result_cls, operation: str, document_id: int, error: PipelineError):
        if error.error_type == PipelineErrorType.PERSISTENCE_FAILURE:
            logger.error(f"{operation} failed for document {document_id}: {error.message}")
        else:
            logger.info(f"{operation} failed for document {document_id}: {error.error_type.value}")
        return result_cls.failure(error)


def _persistence_error() -> PipelineError:
    return PipelineError(PERSISTENCE_FAILURE_MESSAGE, PipelineErrorType.PERSISTENCE_FAILURE)
