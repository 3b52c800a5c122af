"""
Application configuration settings
"""

from pydantic_settings import BaseSettings
from typing import Optional, List


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Application
    APP_NAME: str = "Contract Intelligence"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # CORS
    CORS_ORIGINS: List[str] = ["*"]
    CORS_ALLOW_CREDENTIALS: bool = True
    CORS_ALLOW_METHODS: List[str] = ["*"]
    CORS_ALLOW_HEADERS: List[str] = ["*"]

    # Database
    DATABASE_URL: Optional[str] = None

    # API key for the HTTP surface (disabled when unset)
    API_KEY: Optional[str] = None

    # OpenAI Configuration
    OPENAI_API_KEY: Optional[str] = None
    OPENAI_MODEL: str = "gpt-4o-mini"
    OPENAI_DECISION_MODEL: str = "gpt-4o-mini"  # Cheap yes/no augmentation classifier
    ANALYSIS_TEMPERATURE: float = 0.2
    CLASSIFICATION_TEMPERATURE: float = 0.1
    CHAT_TEMPERATURE: float = 0.7
    OPENAI_TIMEOUT: float = 120.0
    OPENAI_REQUESTS_PER_MINUTE: int = 500
    OPENAI_TOKENS_PER_MINUTE: int = 2000000

    # Characters of document text handed to inference
    CLASSIFICATION_TEXT_LIMIT: int = 30000
    ANALYSIS_TEXT_LIMIT: int = 120000
    CHAT_TEXT_LIMIT: int = 20000

    # Scoring
    FAVORABLE_SCORE_THRESHOLD: int = 70

    # External search (optional - chat never augments when unset)
    SEARCH_API_URL: Optional[str] = None
    SEARCH_API_KEY: Optional[str] = None
    SEARCH_MAX_RESULTS: int = 3
    SEARCH_CONTENT_LIMIT: int = 500
    SEARCH_PASSTHROUGH_LIMIT: int = 1500
    SEARCH_TIMEOUT: float = 15.0

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()
