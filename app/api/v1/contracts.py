"""
Contract endpoints
Classification, full analysis, chat and party selection for one contract.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Security
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.security import get_current_user_id, verify_api_key
from app.db.base import get_db
from app.db.repository import ContractRepository
from app.schemas.contract_analysis import AnalysisOutcome, ChatAnswer, ClassificationResult
from app.schemas.contracts import ChatRequest, ErrorDetail, PartySelectionRequest, PartySelectionResponse
from app.schemas.pipeline import PipelineErrorType, PipelineResult
from app.services.contract_pipeline import ContractPipeline
from app.services.openai_service import OpenAIService, get_openai_service
from app.services.search_service import SearchService

logger = logging.getLogger(__name__)
router = APIRouter()

ERROR_STATUS_CODES = {
    PipelineErrorType.UNAUTHORIZED: 403,
    PipelineErrorType.NOT_FOUND: 404,
    PipelineErrorType.ALREADY_ANALYZED: 409,
    PipelineErrorType.DOMAIN_REJECTION: 422,
    PipelineErrorType.INVALID_ANALYSIS: 502,
    PipelineErrorType.INFERENCE_EMPTY: 502,
    PipelineErrorType.INFERENCE_TRANSPORT_FAILURE: 503,
    PipelineErrorType.PERSISTENCE_FAILURE: 500,
}


def get_repository(db: AsyncSession = Depends(get_db)) -> ContractRepository:
    """Dependency to get contract repository for the request session"""
    return ContractRepository(db)


def get_inference_service() -> OpenAIService:
    """Dependency to get the shared inference service"""
    try:
        return get_openai_service()
    except ValueError as e:
        logger.error(f"Inference service unavailable: {e}")
        raise HTTPException(
            status_code=503,
            detail=ErrorDetail(
                error_type=PipelineErrorType.INFERENCE_TRANSPORT_FAILURE.value,
                message="The analysis service is not configured"
            ).model_dump()
        )


def get_search_service() -> Optional[SearchService]:
    """Dependency to get search service instance (None when not configured)"""
    search_service = SearchService()
    return search_service if search_service.is_configured() else None


def get_contract_pipeline(
    repository: ContractRepository = Depends(get_repository),
    inference: OpenAIService = Depends(get_inference_service),
    search: Optional[SearchService] = Depends(get_search_service),
    user_id: Optional[str] = Depends(get_current_user_id)
) -> ContractPipeline:
    """Dependency to get a pipeline bound to the caller"""
    return ContractPipeline(repository, inference, search=search, user_id=user_id)


def raise_for_failure(result: PipelineResult) -> None:
    """Map a failed pipeline result onto an HTTPException"""
    if result.success:
        return
    raise HTTPException(
        status_code=ERROR_STATUS_CODES.get(result.error_type, 500),
        detail=ErrorDetail(error_type=result.error_type.value, message=result.error).model_dump()
    )


@router.post("/{document_id}/classify", response_model=ClassificationResult)
async def classify_contract(
    document_id: int,
    api_key: str = Security(verify_api_key),
    pipeline: ContractPipeline = Depends(get_contract_pipeline)
):
    """
    Light analysis: detect contract type and parties.

    Creates (or updates) the partial analysis record. Never fails because of
    unusable model output; heuristics are used instead.
    """
    result = await pipeline.classify(document_id)
    raise_for_failure(result)
    return result.classification


@router.post("/{document_id}/analyze", response_model=AnalysisOutcome)
async def analyze_contract(
    document_id: int,
    api_key: str = Security(verify_api_key),
    pipeline: ContractPipeline = Depends(get_contract_pipeline)
):
    """
    Full analysis: clauses, risks, opportunities, score and recommendations.

    A contract can be fully analyzed once; repeated calls return 409.
    """
    result = await pipeline.analyze(document_id)
    raise_for_failure(result)
    return result.analysis


@router.post("/{document_id}/chat", response_model=ChatAnswer)
async def chat_with_contract(
    document_id: int,
    request: ChatRequest,
    api_key: str = Security(verify_api_key),
    pipeline: ContractPipeline = Depends(get_contract_pipeline)
):
    """Answer a question about the contract, searching the web when needed"""
    result = await pipeline.converse(document_id, request.question, request.history)
    raise_for_failure(result)
    return result.answer


@router.get("/{document_id}/party", response_model=PartySelectionResponse)
async def get_party_selection(
    document_id: int,
    api_key: str = Security(verify_api_key),
    pipeline: ContractPipeline = Depends(get_contract_pipeline)
):
    result = await pipeline.get_user_party(document_id)
    raise_for_failure(result)
    return PartySelectionResponse(document_id=document_id, party_name=result.party_name)


@router.put("/{document_id}/party", response_model=PartySelectionResponse)
async def save_party_selection(
    document_id: int,
    request: PartySelectionRequest,
    api_key: str = Security(verify_api_key),
    pipeline: ContractPipeline = Depends(get_contract_pipeline)
):
    """Record which party the user represents; used to frame the full analysis"""
    result = await pipeline.select_user_party(document_id, request.party_name)
    raise_for_failure(result)
    return PartySelectionResponse(document_id=document_id, party_name=result.party_name)
