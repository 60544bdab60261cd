"""RAG core configuration"""
from typing import Optional
from pydantic import model_validator
from pydantic_settings import BaseSettings
from utils.common import get_log_file_path

class Settings(BaseSettings):
    """Application configuration"""

    # Logger configuration
    LOGGER_NAME: str = "rag_core"
    LOG_FILE_PATH: str = get_log_file_path()
    LOG_LEVEL: str = "INFO"

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./rag.db"
    DB_ECHO: bool = False

    # Provider (OpenAI-compatible HTTP API)
    PROVIDER_API_KEY: str = ""
    PROVIDER_BASE_URL: str = "https://api.groq.com/openai/v1"
    EMBEDDING_MODEL_NAME: str = "text-embedding-3-small"
    LLM_MODEL_NAME: str = "llama-3.1-8b-instant"
    EMBEDDING_DIMENSION: Optional[int] = None  # None = accept whatever the provider returns

    # Provider retry policy
    PROVIDER_TIMEOUT_SECONDS: float = 30.0
    PROVIDER_MAX_RETRIES: int = 3
    RETRY_BASE_DELAY_SECONDS: float = 1.0
    RETRY_MAX_JITTER_SECONDS: float = 1.0
    DEFAULT_RETRY_AFTER_SECONDS: int = 60

    # Ingestion
    CHUNK_SIZE: int = 1000
    CHUNK_OVERLAP: int = 200
    EMBEDDING_BATCH_SIZE: int = 10
    EMBEDDING_BATCH_DELAY_SECONDS: float = 0.1
    MAX_RATE_LIMIT_WAITS: int = 5  # Per batch, before the rate limit is surfaced

    # Retrieval
    SIMILARITY_THRESHOLD: float = 0.7
    TOP_K: int = 5
    MAX_CONTEXT_LENGTH: int = 8000  # Characters

    # Generation
    CHAT_HISTORY_LIMIT: int = 3
    ANSWER_TEMPERATURE: float = 0.1
    ANSWER_MAX_TOKENS: int = 800
    FOLLOW_UP_TEMPERATURE: float = 0.7
    FOLLOW_UP_MAX_TOKENS: int = 200

    # Outer deadline for one query (embedding + retries + generation)
    QUERY_TIMEOUT_SECONDS: float = 90.0

    # Processing queue
    QUEUE_MAX_ATTEMPTS: int = 3

    @model_validator(mode="after")
    def provider_timeout_within_deadline(self) -> "Settings":
        # An abandoned provider request keeps its worker thread until this timeout
        if self.QUERY_TIMEOUT_SECONDS and self.PROVIDER_TIMEOUT_SECONDS > self.QUERY_TIMEOUT_SECONDS:
            raise ValueError(
                f"PROVIDER_TIMEOUT_SECONDS ({self.PROVIDER_TIMEOUT_SECONDS}) must not exceed "
                f"QUERY_TIMEOUT_SECONDS ({self.QUERY_TIMEOUT_SECONDS})"
            )
        return self

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"

settings = Settings()
