"""Exception taxonomy for the RAG core."""
from typing import Optional

from core.domain import ErrorCode


class RAGError(Exception):
    """Base error. Carries an ErrorCode for user-facing mapping."""

    error_code: ErrorCode = ErrorCode.PROCESSING_FAILED

    def __init__(self, message: str, error_code: Optional[ErrorCode] = None):
        self.message = message
        if error_code is not None:
            self.error_code = error_code
        super().__init__(message)

    def __str__(self):
        # Format used for logging and ingest results
        return f"[{self.error_code.value}] {self.message}"


class EmptyContentError(RAGError):
    """Nothing to ingest: extracted text is empty or produced no chunks."""
    error_code = ErrorCode.NO_TEXT_FOUND


class NoMaterialsError(RAGError):
    """The retrieval scope holds zero chunks."""
    error_code = ErrorCode.NO_MATERIALS


class ProviderError(RAGError):
    """Provider call failed (after retries, non-retryable status, or malformed body)."""
    error_code = ErrorCode.PROVIDER_ERROR

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class RateLimitError(ProviderError):
    """HTTP 429. Never retried by the client; callers decide whether to wait."""
    error_code = ErrorCode.RATE_LIMITED

    def __init__(self, message: str, retry_after_seconds: int):
        super().__init__(message, status_code=429)
        self.retry_after_seconds = retry_after_seconds


class ProviderTimeoutError(ProviderError, TimeoutError):
    """Provider did not answer within the request timeout. Terminal."""
    error_code = ErrorCode.PROVIDER_TIMEOUT

    def __init__(self, message: str):
        super().__init__(message, status_code=408)


class DocumentNotFoundError(RAGError):
    """Ingestion target has no document record. Chunks are never written for it."""
    error_code = ErrorCode.DOCUMENT_NOT_FOUND
