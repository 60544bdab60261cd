"""
Tests for the retrying provider HTTP client.
"""

from unittest.mock import AsyncMock, Mock

import pytest
import requests

from core.domain import EmbeddingBatch
from core.errors import ProviderError, ProviderTimeoutError, RateLimitError
from infrastructure.provider_client import ProviderClient


def make_response(status_code=200, body=None, headers=None, text=""):
    response = Mock()
    response.status_code = status_code
    response.headers = headers or {}
    response.text = text
    response.json = Mock(return_value=body)
    return response


def embedding_body(*vectors):
    return {
        "data": [{"embedding": list(v), "index": i} for i, v in enumerate(vectors)],
        "usage": {"prompt_tokens": 4, "total_tokens": 4},
    }


def chat_body(content):
    return {
        "choices": [{"message": {"role": "assistant", "content": content}}],
        "usage": {"prompt_tokens": 10, "completion_tokens": 5, "total_tokens": 15},
    }


class TestProviderClient:
    """Request shaping, response parsing and retry policy."""

    @pytest.fixture
    def session(self):
        return Mock(spec=requests.Session)

    @pytest.fixture
    def sleep(self):
        return AsyncMock()

    @pytest.fixture
    def client(self, session, sleep):
        return ProviderClient(
            api_key="test_key",
            base_url="https://provider.test/v1/",
            embedding_model="embed-small",
            chat_model="chat-large",
            max_retries=3,
            retry_base_delay=1.0,
            max_jitter=0.0,
            default_retry_after=60,
            session=session,
            sleep=sleep,
        )

    def test_requires_api_key(self, session):
        with pytest.raises(ValueError):
            ProviderClient(api_key="", base_url="x", embedding_model="e", chat_model="c", session=session)

    @pytest.mark.asyncio
    async def test_embed_posts_request_and_orders_by_index(self, client, session):
        body = {
            "data": [
                {"embedding": [0.0, 1.0], "index": 1},
                {"embedding": [1.0, 0.0], "index": 0},
            ]
        }
        session.post.return_value = make_response(body=body)

        vectors = await client.embed(["first", "second"])

        assert vectors == [[1.0, 0.0], [0.0, 1.0]]
        args, kwargs = session.post.call_args
        assert args[0] == "https://provider.test/v1/embeddings"
        assert kwargs["json"] == {"input": ["first", "second"], "model": "embed-small"}
        assert kwargs["headers"]["Authorization"] == "Bearer test_key"

    @pytest.mark.asyncio
    async def test_embed_empty_input_makes_no_request(self, client, session):
        assert await client.embed([]) == []
        session.post.assert_not_called()

    @pytest.mark.asyncio
    async def test_embed_batch_sends_batch_texts(self, client, session):
        session.post.return_value = make_response(body=embedding_body([1.0], [2.0]))
        batch = EmbeddingBatch(batch_index=0, start=0, texts=("a", "b"))

        assert await client.embed_batch(batch) == [[1.0], [2.0]]

    @pytest.mark.asyncio
    async def test_complete_returns_first_choice(self, client, session):
        session.post.return_value = make_response(body=chat_body("Hello"))

        content = await client.complete([{"role": "user", "content": "Hi"}], temperature=0.1, max_tokens=800)

        assert content == "Hello"
        _, kwargs = session.post.call_args
        assert kwargs["json"]["model"] == "chat-large"
        assert kwargs["json"]["temperature"] == 0.1
        assert kwargs["json"]["max_tokens"] == 800

    @pytest.mark.asyncio
    async def test_server_errors_retried_with_backoff(self, client, session, sleep):
        session.post.side_effect = [
            make_response(status_code=500, text="boom"),
            make_response(status_code=503, text="busy"),
            make_response(body=embedding_body([1.0, 0.0])),
        ]

        vectors = await client.embed(["text"])

        assert vectors == [[1.0, 0.0]]
        assert session.post.call_count == 3
        assert [c.args[0] for c in sleep.await_args_list] == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self, client, session, sleep):
        session.post.return_value = make_response(status_code=502, text="bad gateway")

        with pytest.raises(ProviderError) as exc_info:
            await client.embed(["text"])

        assert exc_info.value.status_code == 502
        assert session.post.call_count == 4  # first try + 3 retries
        assert [c.args[0] for c in sleep.await_args_list] == [1.0, 2.0, 4.0]

    @pytest.mark.asyncio
    async def test_network_errors_are_retried(self, client, session, sleep):
        session.post.side_effect = [
            requests.exceptions.ConnectionError("refused"),
            make_response(body=chat_body("ok")),
        ]

        assert await client.complete([{"role": "user", "content": "q"}], 0.1, 10) == "ok"
        assert sleep.await_count == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [400, 401, 404, 422])
    async def test_client_errors_not_retried(self, client, session, sleep, status):
        session.post.return_value = make_response(status_code=status, text="bad request")

        with pytest.raises(ProviderError) as exc_info:
            await client.embed(["text"])

        assert exc_info.value.status_code == status
        assert session.post.call_count == 1
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_rate_limit_raised_with_retry_after(self, client, session, sleep):
        session.post.return_value = make_response(status_code=429, headers={"Retry-After": "7"})

        with pytest.raises(RateLimitError) as exc_info:
            await client.embed(["text"])

        assert exc_info.value.retry_after_seconds == 7
        assert session.post.call_count == 1
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("header", [None, "Wed, 21 Oct 2015 07:28:00 GMT"])
    async def test_rate_limit_defaults_retry_after(self, client, session, header):
        headers = {"Retry-After": header} if header else {}
        session.post.return_value = make_response(status_code=429, headers=headers)

        with pytest.raises(RateLimitError) as exc_info:
            await client.complete([{"role": "user", "content": "q"}], 0.1, 10)

        assert exc_info.value.retry_after_seconds == 60

    @pytest.mark.asyncio
    async def test_timeout_is_terminal(self, client, session, sleep):
        session.post.side_effect = requests.exceptions.Timeout("read timed out")

        with pytest.raises(ProviderTimeoutError):
            await client.complete([{"role": "user", "content": "q"}], 0.1, 10)

        assert session.post.call_count == 1
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_malformed_body_is_provider_error(self, client, session):
        session.post.return_value = make_response(body={"unexpected": True})

        with pytest.raises(ProviderError):
            await client.embed(["text"])

    @pytest.mark.asyncio
    async def test_non_json_body_is_provider_error(self, client, session):
        response = make_response()
        response.json.side_effect = ValueError("no json")
        session.post.return_value = response

        with pytest.raises(ProviderError):
            await client.complete([{"role": "user", "content": "q"}], 0.1, 10)

    @pytest.mark.asyncio
    async def test_embedding_count_mismatch(self, client, session):
        session.post.return_value = make_response(body=embedding_body([1.0]))

        with pytest.raises(ProviderError):
            await client.embed(["one", "two"])

    @pytest.mark.asyncio
    async def test_mixed_dimensions_rejected(self, client, session):
        session.post.return_value = make_response(body=embedding_body([1.0, 0.0], [1.0]))

        with pytest.raises(ProviderError):
            await client.embed(["one", "two"])

    @pytest.mark.asyncio
    async def test_configured_dimension_enforced(self, session, sleep):
        client = ProviderClient(
            api_key="k", base_url="https://p.test", embedding_model="e", chat_model="c",
            embedding_dimension=3, session=session, sleep=sleep,
        )
        session.post.return_value = make_response(body=embedding_body([1.0, 0.0]))

        with pytest.raises(ProviderError):
            await client.embed(["text"])

    @pytest.mark.asyncio
    async def test_connection_check(self, client, session):
        session.post.return_value = make_response(body=chat_body("ok"))
        assert await client.test_connection() is True
        assert session.post.call_args.kwargs["json"]["max_tokens"] == 5

        session.post.return_value = make_response(status_code=401, text="unauthorized")
        assert await client.test_connection() is False
