"""
Contract endpoint Pydantic schemas
"""

from typing import Optional, List
from pydantic import BaseModel, Field

from app.schemas.contract_analysis import ChatTurn


class ChatRequest(BaseModel):
    """Request model for asking a question about a contract"""
    question: str = Field(..., min_length=1, description="The user's question")
    history: List[ChatTurn] = Field(default_factory=list, description="Previous turns, oldest first")


class PartySelectionRequest(BaseModel):
    """Request model for recording the party the user represents"""
    party_name: Optional[str] = Field(None, max_length=255, description="Party name; null clears the selection")


class PartySelectionResponse(BaseModel):
    """Party the user represents in a contract"""
    document_id: int = Field(..., description="Contract document identifier")
    party_name: Optional[str] = Field(None, description="Selected party, if any")


class ErrorDetail(BaseModel):
    """Error body returned in HTTPException detail"""
    error_type: str = Field(..., description="Pipeline error category")
    message: str = Field(..., description="Human-readable error message")
