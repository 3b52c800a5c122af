"""Tests for app/services/openai_service.py: generate, retry, error classification."""

import asyncio
import json
from collections import deque
import pytest
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
from openai import APIConnectionError

from app.schemas.openai import OpenAIError, OpenAIErrorType
from app.api.v1.contracts import get_inference_service
from app.services.contract_pipeline import ContractPipeline
from app.services.openai_service import OpenAIService, close_openai_service, get_openai_service


def completion(content, total_tokens=42):
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content))],
        usage=SimpleNamespace(total_tokens=total_tokens),
    )


@pytest.fixture
def openai_service():
    """OpenAIService with a mocked AsyncOpenAI client and no retry delay."""
    svc = OpenAIService(api_key="test-key", model="gpt-4o-mini")
    svc.INITIAL_RETRY_DELAY = 0.0
    svc.client = MagicMock()
    svc.client.chat.completions.create = AsyncMock(return_value=completion('{"ok": true}'))
    return svc


class TestGenerate:

    def test_returns_text(self, openai_service):
        assert asyncio.run(openai_service.generate("Hello")) == '{"ok": true}'

    def test_json_mode(self, openai_service):
        asyncio.run(openai_service.generate("Classify", response_format="json", temperature=0.1))

        kwargs = openai_service.client.chat.completions.create.call_args.kwargs
        assert kwargs["response_format"] == {"type": "json_object"}
        assert kwargs["temperature"] == 0.1
        assert kwargs["messages"] == [{"role": "user", "content": "Classify"}]

    def test_free_text_has_no_response_format(self, openai_service):
        asyncio.run(openai_service.generate("Chat", system_message="Be brief", max_tokens=3))

        kwargs = openai_service.client.chat.completions.create.call_args.kwargs
        assert "response_format" not in kwargs
        assert kwargs["max_tokens"] == 3
        assert kwargs["messages"][0] == {"role": "system", "content": "Be brief"}

    def test_model_override(self, openai_service):
        asyncio.run(openai_service.generate("Route", model="gpt-4.1-mini"))
        assert openai_service.client.chat.completions.create.call_args.kwargs["model"] == "gpt-4.1-mini"

    def test_empty_content(self, openai_service):
        openai_service.client.chat.completions.create.return_value = completion(None)
        assert asyncio.run(openai_service.generate("Hello")) == ""

    def test_rejects_empty_prompt(self, openai_service):
        with pytest.raises(ValueError):
            asyncio.run(openai_service.generate(""))


class TestRetry:

    def test_retries_server_error(self, openai_service):
        openai_service.client.chat.completions.create.side_effect = [
            Exception("503 Service Unavailable"),
            completion("recovered"),
        ]
        assert asyncio.run(openai_service.generate("Hello")) == "recovered"
        assert openai_service.client.chat.completions.create.call_count == 2

    def test_authentication_not_retried(self, openai_service):
        openai_service.client.chat.completions.create.side_effect = Exception("401 Unauthorized")

        with pytest.raises(OpenAIError) as exc_info:
            asyncio.run(openai_service.generate("Hello"))

        assert exc_info.value.error_type == OpenAIErrorType.AUTHENTICATION
        assert openai_service.client.chat.completions.create.call_count == 1

    def test_gives_up_after_max_retries(self, openai_service):
        openai_service.client.chat.completions.create.side_effect = Exception("502 Bad Gateway")

        with pytest.raises(OpenAIError) as exc_info:
            asyncio.run(openai_service.generate("Hello"))

        assert exc_info.value.error_type == OpenAIErrorType.SERVER_ERROR
        assert openai_service.client.chat.completions.create.call_count == OpenAIService.MAX_RETRIES


class TestConfiguration:

    def test_requires_api_key(self, monkeypatch):
        monkeypatch.setattr("app.services.openai_service.settings.OPENAI_API_KEY", None)
        with pytest.raises(ValueError):
            OpenAIService()

    def test_parse_error_passthrough(self, openai_service):
        error = OpenAIError("limit", OpenAIErrorType.RATE_LIMIT, retry_after=2.0)
        assert openai_service._parse_error(error) is error

    def test_connection_error_is_network(self, openai_service):
        error = APIConnectionError(request=httpx.Request("POST", "https://api.openai.com/v1/chat/completions"))
        assert openai_service._parse_error(error).error_type == OpenAIErrorType.NETWORK


class TestRequestWindow:

    def test_request_limit(self, openai_service):
        openai_service.requests_per_minute = 1
        asyncio.run(openai_service._record_request("gpt-4o-mini", 10))

        with pytest.raises(OpenAIError) as exc_info:
            asyncio.run(openai_service._check_rate_limit("gpt-4o-mini"))

        assert exc_info.value.error_type == OpenAIErrorType.RATE_LIMIT
        assert exc_info.value.retry_after > 0

    def test_token_limit(self, openai_service):
        openai_service.tokens_per_minute = 100
        asyncio.run(openai_service._record_request("gpt-4o-mini", 90))

        with pytest.raises(OpenAIError):
            asyncio.run(openai_service._check_rate_limit("gpt-4o-mini", estimated_tokens=20))

    def test_other_model_unaffected(self, openai_service):
        openai_service.requests_per_minute = 1
        asyncio.run(openai_service._record_request("gpt-4o-mini", 10))
        asyncio.run(openai_service._check_rate_limit("gpt-4.1-mini"))

    def test_expired_entries_pruned(self, openai_service):
        openai_service.requests_per_minute = 1
        openai_service._window["gpt-4o-mini"] = deque([(0.0, 10)])
        asyncio.run(openai_service._check_rate_limit("gpt-4o-mini"))
        assert not openai_service._window["gpt-4o-mini"]


class TestErrorTypes:

    def test_retryable(self):
        assert OpenAIError("x", OpenAIErrorType.SERVER_ERROR).retryable
        assert not OpenAIError("x", OpenAIErrorType.AUTHENTICATION).retryable


@pytest.fixture
def shared_service(monkeypatch):
    """The cached process-wide service with a mocked client."""
    monkeypatch.setattr("app.services.openai_service.settings.OPENAI_API_KEY", "test-key")
    get_openai_service.cache_clear()
    svc = get_openai_service()
    svc.client = MagicMock()
    svc.client.chat.completions.create = AsyncMock(return_value=completion("{}"))
    svc.client.close = AsyncMock()
    yield svc
    get_openai_service.cache_clear()


class TestSharedService:

    def test_same_instance_per_process(self, shared_service):
        assert get_openai_service() is shared_service
        assert get_inference_service() is shared_service

    def test_window_spans_pipelines(self, shared_service, repository, classification_output):
        shared_service.client.chat.completions.create.return_value = completion(json.dumps(classification_output))

        for _ in range(2):
            pipeline = ContractPipeline(repository, get_inference_service(), user_id="user-1")
            assert asyncio.run(pipeline.classify(1)).success

        assert len(shared_service._window[shared_service.model]) == 2

    def test_close_releases_client(self, shared_service):
        asyncio.run(close_openai_service())

        shared_service.client.close.assert_awaited_once()
        assert get_openai_service.cache_info().currsize == 0
