"""
OpenAI-related Pydantic schemas and types
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class OpenAIErrorType(str, Enum):
    """Types of OpenAI API errors"""
    RATE_LIMIT = "rate_limit"
    TOKEN_LIMIT = "token_limit"
    INVALID_REQUEST = "invalid_request"
    AUTHENTICATION = "authentication"
    PERMISSION = "permission"
    SERVER_ERROR = "server_error"
    NETWORK = "network"
    UNKNOWN = "unknown"


# Errors that will not succeed on retry
NON_RETRYABLE_ERRORS = frozenset({
    OpenAIErrorType.AUTHENTICATION,
    OpenAIErrorType.PERMISSION,
    OpenAIErrorType.INVALID_REQUEST,
    OpenAIErrorType.TOKEN_LIMIT,
})


class OpenAIError(Exception):
    """Inference failure raised by OpenAIService"""
    def __init__(self, message: str, error_type: OpenAIErrorType, retry_after: Optional[float] = None):
        self.message = message
        self.error_type = error_type
        self.retry_after = retry_after
        super().__init__(self.message)

    @property
    def retryable(self) -> bool:
        return self.error_type not in NON_RETRYABLE_ERRORS


class ChatRole(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class ChatMessage(BaseModel):
    """Chat message sent to the completions API"""
    role: ChatRole
    content: str = Field(..., min_length=1)
