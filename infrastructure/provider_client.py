# infrastructure/provider_client.py
"""Retrying HTTP client for an OpenAI-compatible embeddings + chat completions API"""
import asyncio
import logging
import random
from typing import Any, Awaitable, Callable, Dict, List, Optional

import requests
from pydantic import ValidationError

from config import settings, Settings
from core.errors import ProviderError, ProviderTimeoutError, RateLimitError
from core.interfaces import IProviderClient
from infrastructure.provider_schemas import (
    ChatCompletionRequest, ChatCompletionResponse, ChatMessage,
    EmbeddingRequest, EmbeddingResponse
)

logger = logging.getLogger(settings.LOGGER_NAME)


class _TransientProviderError(ProviderError):
    """5xx, 4xx above 429, or a network failure. Eligible for backoff retry."""


class ProviderClient(IProviderClient):
    """
    Thin async client around POST /embeddings and POST /chat/completions.

    Retry policy:
    - Timeout → ProviderTimeoutError, never retried
    - 429 → RateLimitError(retry_after_seconds), never retried here
    - 400-428 → ProviderError, never retried (malformed request)
    - anything else non-2xx, or connection errors → exponential backoff
      with jitter, up to max_retries retries, then ProviderError

    The blocking requests call runs in a worker thread so the event loop
    stays free; backoff sleeps are awaited and therefore cancellable. A
    thread already sending a request cannot be cancelled: when a caller's
    deadline fires, the request still runs until `timeout`. Settings keeps
    that timeout at or below QUERY_TIMEOUT_SECONDS.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str,
        embedding_model: str,
        chat_model: str,
        timeout: float = 30.0,
        max_retries: int = 3,
        retry_base_delay: float = 1.0,
        max_jitter: float = 1.0,
        default_retry_after: int = 60,
        embedding_dimension: Optional[int] = None,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        if not api_key:
            raise ValueError("Provider API key is required (set PROVIDER_API_KEY)")
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")

        self.base_url = base_url.rstrip("/")
        self.embedding_model = embedding_model
        self.chat_model = chat_model
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_base_delay = retry_base_delay
        self.max_jitter = max_jitter
        self.default_retry_after = default_retry_after
        self.embedding_dimension = embedding_dimension
        self._api_key = api_key
        self._session = session or requests.Session()
        self._sleep = sleep

    @classmethod
    def from_settings(cls, cfg: Settings = settings, **overrides) -> "ProviderClient":
        options = dict(
            api_key=cfg.PROVIDER_API_KEY,
            base_url=cfg.PROVIDER_BASE_URL,
            embedding_model=cfg.EMBEDDING_MODEL_NAME,
            chat_model=cfg.LLM_MODEL_NAME,
            timeout=cfg.PROVIDER_TIMEOUT_SECONDS,
            max_retries=cfg.PROVIDER_MAX_RETRIES,
            retry_base_delay=cfg.RETRY_BASE_DELAY_SECONDS,
            max_jitter=cfg.RETRY_MAX_JITTER_SECONDS,
            default_retry_after=cfg.DEFAULT_RETRY_AFTER_SECONDS,
            embedding_dimension=cfg.EMBEDDING_DIMENSION,
        )
        options.update(overrides)
        return cls(**options)

    # ============ PUBLIC API ============

    async def embed(self, texts: List[str]) -> List[List[float]]:
        if not texts:
            return []

        payload = EmbeddingRequest(input=texts, model=self.embedding_model).model_dump()
        body = await self._post_with_retry("/embeddings", payload, "embeddings")

        try:
            parsed = EmbeddingResponse.model_validate(body)
        except ValidationError as e:
            raise ProviderError(f"Malformed embeddings response: {e.error_count()} validation error(s)") from e

        embeddings = parsed.ordered_embeddings()
        if len(embeddings) != len(texts):
            raise ProviderError(
                f"Provider returned {len(embeddings)} embeddings for {len(texts)} input(s)"
            )
        self._check_dimensions(embeddings)

        logger.debug(f"[PROVIDER] Generated embeddings for {len(texts)} input(s)")
        return embeddings

    async def complete(
        self,
        messages: List[Dict[str, str]],
        temperature: float,
        max_tokens: int
    ) -> str:
        payload = ChatCompletionRequest(
            messages=[ChatMessage(**m) for m in messages],
            model=self.chat_model,
            temperature=temperature,
            max_tokens=max_tokens,
        ).model_dump()
        body = await self._post_with_retry("/chat/completions", payload, "chat completion")

        try:
            parsed = ChatCompletionResponse.model_validate(body)
        except ValidationError as e:
            raise ProviderError(f"Malformed chat completion response: {e.error_count()} validation error(s)") from e

        total_tokens = parsed.usage.total_tokens if parsed.usage else 0
        logger.debug(f"[PROVIDER] Generated chat completion with {total_tokens} tokens")
        return parsed.content

    async def test_connection(self) -> bool:
        """Send a 5-token completion to verify credentials and reachability."""
        try:
            await self.complete([{"role": "user", "content": "test"}], temperature=0.0, max_tokens=5)
            return True
        except Exception as e:
            logger.error(f"[PROVIDER] Connection test failed: {e}")
            return False

    def close(self) -> None:
        self._session.close()

    # ============ RETRY LOOP ============

    async def _post_with_retry(self, path: str, payload: Dict[str, Any], operation: str) -> Any:
        attempt = 0
        while True:
            try:
                return await self._post_once(path, payload, operation)
            except _TransientProviderError as e:
                if attempt >= self.max_retries:
                    logger.error(
                        f"[PROVIDER] Max retries ({self.max_retries}) exceeded for {operation}: {e.message}"
                    )
                    raise ProviderError(
                        f"{operation} failed after {attempt + 1} attempt(s): {e.message}",
                        status_code=e.status_code
                    ) from e

                delay = self._backoff_delay(attempt)
                logger.warning(f"[PROVIDER] {operation} failed: {e.message}")
                logger.warning(
                    f"[PROVIDER] Retrying in {delay:.2f}s (attempt {attempt + 1}/{self.max_retries})"
                )
                await self._sleep(delay)
                attempt += 1

    def _backoff_delay(self, attempt: int) -> float:
        jitter = random.uniform(0, self.max_jitter) if self.max_jitter > 0 else 0.0
        return self.retry_base_delay * (2 ** attempt) + jitter

    async def _post_once(self, path: str, payload: Dict[str, Any], operation: str) -> Any:
        url = f"{self.base_url}{path}"
        try:
            response = await asyncio.to_thread(
                self._session.post,
                url,
                json=payload,
                headers=self._headers(),
                timeout=self.timeout,
            )
        except requests.exceptions.Timeout as e:
            logger.error(f"[PROVIDER] {operation} timed out after {self.timeout} seconds")
            raise ProviderTimeoutError(f"{operation} request timed out") from e
        except requests.exceptions.RequestException as e:
            raise _TransientProviderError(f"Cannot reach provider at {self.base_url}: {e}") from e

        status = response.status_code

        if status == 429:
            retry_after = self._parse_retry_after(response.headers.get("Retry-After"))
            logger.warning(f"[PROVIDER] Rate limit hit on {operation}, retry after {retry_after}s")
            raise RateLimitError(f"Provider rate limit exceeded ({operation})", retry_after)

        if 200 <= status < 300:
            try:
                return response.json()
            except ValueError as e:
                raise ProviderError(f"{operation} returned a non-JSON body", status_code=status) from e

        detail = (response.text or "")[:200]
        if 400 <= status < 429:
            logger.error(f"[PROVIDER] Non-retryable error on {operation}: {status} {detail}")
            raise ProviderError(f"Provider error {status} on {operation}: {detail}", status_code=status)

        raise _TransientProviderError(f"Provider error {status} on {operation}: {detail}", status_code=status)

    # ============ HELPERS ============

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
        }

    def _parse_retry_after(self, value: Optional[str]) -> int:
        """Seconds from a Retry-After header; missing or HTTP-date values fall back to the default."""
        if not value:
            return self.default_retry_after
        try:
            return max(0, int(float(value)))
        except ValueError:
            return self.default_retry_after

    def _check_dimensions(self, embeddings: List[List[float]]) -> None:
        lengths = {len(vector) for vector in embeddings}
        if len(lengths) > 1:
            raise ProviderError(f"Provider returned embeddings of mixed dimensionality: {sorted(lengths)}")
        dim = lengths.pop()
        if dim == 0:
            raise ProviderError("Provider returned empty embedding vectors")
        if self.embedding_dimension is not None and dim != self.embedding_dimension:
            raise ProviderError(
                f"Expected {self.embedding_dimension}-dimensional embeddings, got {dim}"
            )
