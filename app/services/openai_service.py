"""
OpenAI Service
Inference client for the contract pipeline: chat completions with error
classification, a per-minute request window and retry with exponential backoff.
"""

import asyncio
import logging
import time
from functools import lru_cache
from collections import deque
from typing import Deque, List, Dict, Any, Optional, Tuple

import httpx
from openai import (
    APIConnectionError,
    APIStatusError,
    APITimeoutError,
    AsyncOpenAI,
    AuthenticationError,
    BadRequestError,
    PermissionDeniedError,
    RateLimitError,
)
from pydantic import ValidationError

from app.core.config import settings
from app.schemas.openai import (
    OpenAIError,
    OpenAIErrorType,
    ChatMessage,
)

logger = logging.getLogger(__name__)

WINDOW_SECONDS = 60.0


class OpenAIService:
    """
    Chat completion client shared by classification, analysis and chat.

    Requests are counted against a one-minute window (OPENAI_REQUESTS_PER_MINUTE
    and OPENAI_TOKENS_PER_MINUTE) before they are sent. Transient failures are
    retried; authentication, permission and malformed-request errors are not.
    """

    MAX_RETRIES = 3
    INITIAL_RETRY_DELAY = 1.0  # seconds
    MAX_RETRY_DELAY = 30.0  # seconds
    BACKOFF_MULTIPLIER = 2.0

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None):
        """
        Args:
            api_key: Defaults to OPENAI_API_KEY
            model: Default chat model, defaults to OPENAI_MODEL

        Raises:
            ValueError: If no API key is available
        """
        self.api_key = api_key or settings.OPENAI_API_KEY
        if not self.api_key:
            raise ValueError("OpenAI API key is required. Set OPENAI_API_KEY in environment variables.")

        self.model = model or settings.OPENAI_MODEL
        self.client = AsyncOpenAI(api_key=self.api_key, timeout=settings.OPENAI_TIMEOUT)

        self.requests_per_minute = settings.OPENAI_REQUESTS_PER_MINUTE
        self.tokens_per_minute = settings.OPENAI_TOKENS_PER_MINUTE
        # (timestamp, tokens) per model
        self._window: Dict[str, Deque[Tuple[float, int]]] = {}
        self._window_lock = asyncio.Lock()

    def _prune(self, model: str, now: float) -> Deque[Tuple[float, int]]:
        entries = self._window.setdefault(model, deque())
        while entries and now - entries[0][0] >= WINDOW_SECONDS:
            entries.popleft()
        return entries

    async def _check_rate_limit(self, model: str, estimated_tokens: int = 0) -> None:
        """
        Raises:
            OpenAIError: RATE_LIMIT or TOKEN_LIMIT when the request would not fit
                in the current window; retry_after says when it will
        """
        async with self._window_lock:
            now = time.time()
            entries = self._prune(model, now)
            if not entries:
                return

            retry_after = WINDOW_SECONDS - (now - entries[0][0]) + 1.0
            if len(entries) >= self.requests_per_minute:
                raise OpenAIError(
                    f"{model} is at {self.requests_per_minute} requests per minute",
                    OpenAIErrorType.RATE_LIMIT,
                    retry_after=retry_after
                )

            used_tokens = sum(tokens for _, tokens in entries)
            if used_tokens + estimated_tokens > self.tokens_per_minute:
                raise OpenAIError(
                    f"{model} is at {self.tokens_per_minute} tokens per minute",
                    OpenAIErrorType.RATE_LIMIT,
                    retry_after=retry_after
                )

    async def _record_request(self, model: str, tokens_used: int) -> None:
        async with self._window_lock:
            self._window.setdefault(model, deque()).append((time.time(), tokens_used))

    def _estimate_tokens(self, text: str) -> int:
        # ~4 characters per token; only used for window bookkeeping
        return len(text) // 4

    def _extract_retry_after(self, error: Exception) -> Optional[float]:
        response = getattr(error, "response", None)
        headers = getattr(response, "headers", None)
        if not headers:
            return None
        value = headers.get("retry-after")
        if value is None:
            return None
        try:
            return float(value)
        except (TypeError, ValueError):
            return None

    def _parse_error(self, error: Exception) -> OpenAIError:
        """
        Map an SDK (or transport) exception onto OpenAIErrorType.

        SDK exception classes are checked first; status codes in the message
        are the fallback for errors raised outside the SDK.
        """
        if isinstance(error, OpenAIError):
            return error

        text = str(error)
        lowered = text.lower()

        if isinstance(error, RateLimitError):
            return OpenAIError(
                f"Rate limited by OpenAI: {text}",
                OpenAIErrorType.RATE_LIMIT,
                retry_after=self._extract_retry_after(error)
            )
        if isinstance(error, AuthenticationError):
            return OpenAIError(f"Authentication failed: {text}", OpenAIErrorType.AUTHENTICATION)
        if isinstance(error, PermissionDeniedError):
            return OpenAIError(f"Permission denied: {text}", OpenAIErrorType.PERMISSION)
        if isinstance(error, BadRequestError):
            if "context_length" in lowered or "maximum context" in lowered:
                return OpenAIError(f"Prompt too long for model: {text}", OpenAIErrorType.TOKEN_LIMIT)
            return OpenAIError(f"Invalid request: {text}", OpenAIErrorType.INVALID_REQUEST)
        if isinstance(error, APIStatusError) and error.status_code >= 500:
            return OpenAIError(f"OpenAI server error: {text}", OpenAIErrorType.SERVER_ERROR)
        if isinstance(error, (APITimeoutError, APIConnectionError, httpx.TransportError, ConnectionError)):
            return OpenAIError(f"Network error: {text}", OpenAIErrorType.NETWORK)

        if "429" in lowered or "rate limit" in lowered:
            return OpenAIError(f"Rate limited by OpenAI: {text}", OpenAIErrorType.RATE_LIMIT)
        if "401" in lowered or "unauthorized" in lowered:
            return OpenAIError(f"Authentication failed: {text}", OpenAIErrorType.AUTHENTICATION)
        if "403" in lowered or "forbidden" in lowered:
            return OpenAIError(f"Permission denied: {text}", OpenAIErrorType.PERMISSION)
        if any(code in lowered for code in ("500", "502", "503", "504")):
            return OpenAIError(f"OpenAI server error: {text}", OpenAIErrorType.SERVER_ERROR)
        if "400" in lowered:
            return OpenAIError(f"Invalid request: {text}", OpenAIErrorType.INVALID_REQUEST)

        return OpenAIError(f"Unknown error: {text}", OpenAIErrorType.UNKNOWN)

    async def _retry_with_backoff(self, func, *args, **kwargs):
        """
        Call func, retrying retryable failures up to MAX_RETRIES times.

        The wait is the API's Retry-After when present, otherwise an
        exponentially growing delay capped at MAX_RETRY_DELAY.
        """
        delay = self.INITIAL_RETRY_DELAY
        attempt = 1
        while True:
            try:
                return await func(*args, **kwargs)
            except Exception as e:
                parsed_error = self._parse_error(e)
                if not parsed_error.retryable or attempt >= self.MAX_RETRIES:
                    raise parsed_error from e

                wait = min(parsed_error.retry_after or delay, self.MAX_RETRY_DELAY)
                logger.warning(
                    f"OpenAI call failed ({parsed_error.error_type.value}), "
                    f"retry {attempt}/{self.MAX_RETRIES - 1} in {wait:.2f}s: {parsed_error.message[:100]}"
                )
                await asyncio.sleep(wait)
                delay = min(delay * self.BACKOFF_MULTIPLIER, self.MAX_RETRY_DELAY)
                attempt += 1

    async def create_chat_completion(
        self,
        messages: List[Dict[str, str]],
        model: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: Optional[int] = None,
        response_format: Optional[Dict[str, str]] = None
    ) -> Any:
        """
        Create chat completion with error handling and rate limiting.

        Args:
            messages: List of message dicts with 'role' and 'content'
            model: Chat model to use (defaults to the service model)
            temperature: Sampling temperature (0-2)
            max_tokens: Maximum tokens in response
            response_format: OpenAI response_format, e.g. {"type": "json_object"}

        Returns:
            ChatCompletion object

        Raises:
            ValueError: If messages are malformed
            OpenAIError: If request fails after retries
        """
        if not messages:
            raise ValueError("At least one message is required")

        for msg in messages:
            try:
                ChatMessage(**msg)
            except (ValidationError, TypeError) as e:
                raise ValueError(f"Invalid chat message: {e}")

        model = model or self.model

        total_text = " ".join(msg.get("content", "") for msg in messages)
        estimated_tokens = self._estimate_tokens(total_text)
        if max_tokens:
            estimated_tokens += max_tokens

        await self._check_rate_limit(model, estimated_tokens=estimated_tokens)

        request_kwargs: Dict[str, Any] = {
            "model": model,
            "messages": messages,
            "temperature": temperature,
        }
        if max_tokens:
            request_kwargs["max_tokens"] = max_tokens
        if response_format:
            request_kwargs["response_format"] = response_format

        async def _create_completion():
            return await self.client.chat.completions.create(**request_kwargs)

        try:
            completion = await self._retry_with_backoff(_create_completion)
        except OpenAIError as e:
            logger.error(f"Failed to create chat completion: {e.message}")
            raise

        tokens_used = estimated_tokens
        if getattr(completion, "usage", None):
            tokens_used = completion.usage.total_tokens

        await self._record_request(model, tokens_used)
        logger.info(f"Chat completion created successfully (model: {model}, tokens: {tokens_used})")
        return completion

    async def generate(
        self,
        prompt: str,
        response_format: Optional[str] = None,
        system_message: Optional[str] = None,
        model: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: Optional[int] = None
    ) -> str:
        """
        Generate text for a single prompt.

        Args:
            prompt: User prompt
            response_format: "json" to request a pure JSON object, None for free text
            system_message: Optional system message
            model: Chat model to use
            temperature: Sampling temperature
            max_tokens: Maximum tokens in response

        Returns:
            Response text content (empty string if the model returned nothing)

        Raises:
            OpenAIError: If request fails
        """
        messages = []
        if system_message:
            messages.append({"role": "system", "content": system_message})
        messages.append({"role": "user", "content": prompt})

        completion = await self.create_chat_completion(
            messages=messages,
            model=model,
            temperature=temperature,
            max_tokens=max_tokens,
            response_format={"type": "json_object"} if response_format == "json" else None
        )

        if not completion.choices:
            return ""
        return completion.choices[0].message.content or ""

    async def close(self) -> None:
        await self.client.close()

    def is_configured(self) -> bool:
        """Check if OpenAI service is properly configured"""
        return bool(self.api_key)


@lru_cache()
def get_openai_service() -> OpenAIService:
    """
    Process-wide OpenAIService, so the request window and HTTP connection
    pool are shared across requests.

    Raises:
        ValueError: If OPENAI_API_KEY is not set (not cached, so a later call
            can succeed once configured)
    """
    return OpenAIService()


async def close_openai_service() -> None:
    """Close the shared client, if one was created"""
    if get_openai_service.cache_info().currsize:
        await get_openai_service().close()
        get_openai_service.cache_clear()
