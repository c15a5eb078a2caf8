"""Tests for the HTTP backend against a mocked transport."""
import asyncio
import json

import httpx
import pytest

from blompie.llm import (
    BackendEndpoint,
    BackendKind,
    ChatMessage,
    DecodingError,
    HTTPStatusError,
    InvalidURLError,
    NetworkError,
    NoServerConfiguredError,
    OllamaBackend,
)
from blompie.llm.providers.ollama import decode_stream_line

MESSAGES = [
    ChatMessage(role="system", content="You are the game master."),
    ChatMessage(role="user", content="Look around"),
]


def _json_handler(payload, status_code: int = 200, seen: list | None = None):
    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        return httpx.Response(status_code, json=payload)

    return handler


class TestOllamaBackendInit:
    """Tests for backend construction."""

    def test_rejects_tinyllm_endpoint(self):
        """Test that TinyLLM endpoints need the OpenAI-compatible backend."""
        endpoint = BackendEndpoint(host="localhost", port=8000, kind=BackendKind.TINYLLM)
        with pytest.raises(ValueError):
            OllamaBackend(endpoint)

    def test_kind_follows_endpoint(self, mock_backend):
        """Test that kind and default model come from the constructor."""
        backend = mock_backend(_json_handler({}), kind=BackendKind.OPENWEBUI, model="phi")

        assert backend.kind is BackendKind.OPENWEBUI
        assert backend.model == "phi"

    def test_starts_not_configured(self, mock_backend):
        """Test the initial connection state."""
        backend = mock_backend(_json_handler({}))

        assert backend.is_connected is False
        assert backend.connection_status == "Not configured"


class TestFetchAvailableModels:
    """Tests for model listing."""

    @pytest.mark.asyncio
    async def test_ollama_models(self, mock_backend):
        """Test listing via /api/tags."""
        seen = []
        backend = mock_backend(_json_handler({"models": [{"name": "mistral"}, {"name": "phi"}]}, seen=seen))

        assert await backend.fetch_available_models() == ["mistral", "phi"]
        assert seen[0].method == "GET"
        assert str(seen[0].url) == "http://localhost:11434/api/tags"

    @pytest.mark.asyncio
    async def test_openwebui_models(self, mock_backend):
        """Test listing via /api/models on OpenWebUI."""
        seen = []
        backend = mock_backend(
            _json_handler({"data": [{"id": "llama3.2"}]}, seen=seen),
            kind=BackendKind.OPENWEBUI,
            port=8080,
        )

        assert await backend.fetch_available_models() == ["llama3.2"]
        assert seen[0].url.path == "/api/models"

    @pytest.mark.asyncio
    async def test_http_error(self, mock_backend):
        """Test that non-2xx statuses raise HTTPStatusError with the body."""
        backend = mock_backend(lambda request: httpx.Response(500, text="boom"))

        with pytest.raises(HTTPStatusError) as exc_info:
            await backend.fetch_available_models()

        assert exc_info.value.status_code == 500
        assert exc_info.value.body == "boom"
        assert "HTTP 500" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_http_error_without_body(self, mock_backend):
        """Test the message when the server sends no details."""
        backend = mock_backend(lambda request: httpx.Response(404))

        with pytest.raises(HTTPStatusError, match="No details"):
            await backend.fetch_available_models()

    @pytest.mark.asyncio
    async def test_invalid_json(self, mock_backend):
        """Test that a non-JSON body raises DecodingError carrying the body."""
        backend = mock_backend(lambda request: httpx.Response(200, text="<html>"))

        with pytest.raises(DecodingError) as exc_info:
            await backend.fetch_available_models()

        assert exc_info.value.body == "<html>"

    @pytest.mark.asyncio
    async def test_wrong_shape(self, mock_backend):
        """Test that valid JSON of the wrong shape raises DecodingError."""
        backend = mock_backend(_json_handler({"unexpected": True}))

        with pytest.raises(DecodingError):
            await backend.fetch_available_models()

    @pytest.mark.asyncio
    async def test_connect_error(self, mock_backend):
        """Test that transport failures become NetworkError."""
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        backend = mock_backend(handler)

        with pytest.raises(NetworkError, match="connection refused"):
            await backend.fetch_available_models()

    @pytest.mark.asyncio
    async def test_no_server_configured(self, mock_backend):
        """Test that an empty host fails before any request is made."""
        seen = []
        backend = mock_backend(_json_handler({}, seen=seen), host="")

        with pytest.raises(NoServerConfiguredError):
            await backend.fetch_available_models()
        assert seen == []

    @pytest.mark.asyncio
    async def test_no_endpoint(self):
        """Test that a backend without an endpoint is not configured."""
        backend = OllamaBackend(None)
        try:
            with pytest.raises(NoServerConfiguredError):
                await backend.fetch_available_models()
        finally:
            await backend.close()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("host", ["bad host", "http://x", "a/b"])
    async def test_invalid_host(self, mock_backend, host: str):
        """Test that hosts which cannot form a URL raise InvalidURLError."""
        backend = mock_backend(_json_handler({}), host=host)

        with pytest.raises(InvalidURLError):
            await backend.fetch_available_models()


class TestChatCompletion:
    """Tests for buffered chat."""

    @pytest.mark.asyncio
    async def test_request_and_response(self, mock_backend):
        """Test the POST body and the decoded reply."""
        seen = []
        backend = mock_backend(_json_handler(
            {
                "message": {"role": "assistant", "content": "You see a door.\nACTIONS: Open door"},
                "done": True,
                "eval_count": 30,
                "eval_duration": 1_500_000_000,
            },
            seen=seen,
        ))

        response = await backend.chat_completion(MESSAGES, temperature=1.3)

        assert response.content.startswith("You see a door.")
        assert response.tokens_per_second == 20.0

        request = seen[0]
        assert request.method == "POST"
        assert request.url.path == "/api/chat"
        body = json.loads(request.content)
        assert body == {
            "model": "mistral",
            "messages": [
                {"role": "system", "content": "You are the game master."},
                {"role": "user", "content": "Look around"},
            ],
            "stream": False,
            "options": {"temperature": 1.3},
        }

    @pytest.mark.asyncio
    async def test_max_tokens_and_model_override(self, mock_backend):
        """Test that max_tokens maps to num_predict and model overrides the default."""
        seen = []
        backend = mock_backend(_json_handler(
            {"message": {"role": "assistant", "content": "ok"}, "done": True}, seen=seen
        ))

        await backend.chat_completion(MESSAGES, model="phi", max_tokens=128)

        body = json.loads(seen[0].content)
        assert body["model"] == "phi"
        assert body["options"]["num_predict"] == 128

    @pytest.mark.asyncio
    async def test_openwebui_path_and_shape(self, mock_backend):
        """Test OpenWebUI's chat path and OpenAI-shaped answer."""
        seen = []
        backend = mock_backend(
            _json_handler(
                {"choices": [{"message": {"role": "assistant", "content": "Hi"}, "finish_reason": "stop"}]},
                seen=seen,
            ),
            kind=BackendKind.OPENWEBUI,
            port=8080,
        )

        response = await backend.chat_completion(MESSAGES)

        assert response.content == "Hi"
        assert seen[0].url.path == "/api/chat/completions"

    @pytest.mark.asyncio
    async def test_undecodable_reply(self, mock_backend):
        """Test that a reply without a message raises DecodingError."""
        backend = mock_backend(_json_handler({"error": "model not found"}))

        with pytest.raises(DecodingError):
            await backend.chat_completion(MESSAGES)

    @pytest.mark.asyncio
    async def test_choice_message_not_an_object(self, mock_backend):
        """Test that a choices entry whose message is a string raises DecodingError."""
        backend = mock_backend(
            _json_handler({"choices": [{"message": "oops"}]}),
            kind=BackendKind.OPENWEBUI,
            port=8080,
        )

        with pytest.raises(DecodingError):
            await backend.chat_completion(MESSAGES)

    @pytest.mark.asyncio
    async def test_send_chat_buffered_reports_speed_once(self, mock_backend):
        """Test that buffered send_chat calls on_complete exactly once."""
        backend = mock_backend(_json_handler({
            "message": {"role": "assistant", "content": "Done."},
            "done": True,
            "eval_count": 10,
            "eval_duration": 1_000_000_000,
        }))
        chunks, speeds = [], []

        text = await backend.send_chat(MESSAGES, on_chunk=chunks.append, on_complete=speeds.append)

        assert text == "Done."
        assert chunks == []
        assert speeds == [10.0]


class TestChatStreaming:
    """Tests for streamed chat."""

    @pytest.mark.asyncio
    async def test_stream_chunks_and_speed(self, mock_backend, stream_body):
        """Test that chunks arrive in order and speed comes from the final line."""
        body = stream_body(
            {"message": {"role": "assistant", "content": "Hello, "}, "done": False},
            {"message": {"role": "assistant", "content": "world"}, "done": False},
            {"message": {"role": "assistant", "content": ""}, "done": True,
             "eval_count": 50, "eval_duration": 2_000_000_000},
        )
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, content=body)

        backend = mock_backend(handler)
        chunks, speeds = [], []

        text = await backend.send_chat(
            MESSAGES, streaming=True, on_chunk=chunks.append, on_complete=speeds.append
        )

        assert text == "Hello, world"
        assert chunks == ["Hello, ", "world"]
        assert speeds == [25.0]
        assert json.loads(seen[0].content)["stream"] is True

    @pytest.mark.asyncio
    async def test_malformed_final_line(self, mock_backend, stream_body):
        """Test that an undecodable last line is skipped and speed is unknown."""
        body = stream_body(
            {"message": {"role": "assistant", "content": "Hello"}, "done": False},
            "{not json",
        )
        backend = mock_backend(lambda request: httpx.Response(200, content=body))
        speeds = []

        text = await backend.send_chat(MESSAGES, streaming=True, on_complete=speeds.append)

        assert text == "Hello"
        assert speeds == [None]

    @pytest.mark.asyncio
    async def test_openwebui_delta_not_an_object(self, mock_backend, stream_body):
        """Test that a delta holding a bare string is skipped, not raised."""
        body = stream_body(
            'data: {"choices": [{"delta": {"content": "Hello"}}]}',
            'data: {"choices": [{"delta": "oops"}]}',
            "data: [DONE]",
        )
        backend = mock_backend(
            lambda request: httpx.Response(200, content=body),
            kind=BackendKind.OPENWEBUI,
            port=8080,
        )

        text = await backend.send_chat(MESSAGES, streaming=True)

        assert text == "Hello"

    @pytest.mark.asyncio
    async def test_stream_http_error(self, mock_backend):
        """Test that a failed streaming request raises HTTPStatusError."""
        backend = mock_backend(lambda request: httpx.Response(503, text="loading model"))
        speeds = []

        with pytest.raises(HTTPStatusError) as exc_info:
            await backend.send_chat(MESSAGES, streaming=True, on_complete=speeds.append)

        assert exc_info.value.body == "loading model"
        assert speeds == []

    @pytest.mark.asyncio
    async def test_stream_network_error(self, mock_backend):
        """Test that a dropped connection during streaming raises NetworkError."""
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadError("reset by peer", request=request)

        backend = mock_backend(handler)

        with pytest.raises(NetworkError):
            await backend.send_chat(MESSAGES, streaming=True)

    @pytest.mark.asyncio
    async def test_resource_timeout(self, mock_backend):
        """Test that the whole-call deadline surfaces as NetworkError."""
        async def slow_stream():
            await asyncio.sleep(1)
            yield b""

        backend = mock_backend(
            lambda request: httpx.Response(200, content=slow_stream()),
            resource_timeout=0.01,
        )

        with pytest.raises(NetworkError, match="timed out"):
            await backend.send_chat(MESSAGES, streaming=True)


class TestDecodeStreamLine:
    """Tests for stream line decoding."""

    @pytest.mark.parametrize("line", ["", "   ", "data: [DONE]", "[DONE]"])
    def test_skips_empty_and_sentinels(self, line: str):
        """Test that blank lines and [DONE] carry nothing."""
        assert decode_stream_line(line) is None

    def test_sse_prefix(self):
        """Test that data:-prefixed OpenAI deltas are decoded."""
        chunk = decode_stream_line('data: {"choices":[{"delta":{"content":"Hi"}}]}')

        assert chunk is not None
        assert chunk.content == "Hi"

    def test_malformed_line(self):
        """Test that malformed JSON is dropped rather than raised."""
        assert decode_stream_line('{"message": ') is None

    @pytest.mark.parametrize(
        "line",
        [
            '{"choices": [{"delta": "oops"}]}',
            'data: {"choices": [{"message": 42}]}',
        ],
    )
    def test_choice_body_not_an_object(self, line: str):
        """Test that a choices entry without an object body is dropped."""
        assert decode_stream_line(line) is None


class TestCheckConnection:
    """Tests for connection probing."""

    @pytest.mark.asyncio
    async def test_connected(self, mock_backend):
        """Test a successful probe."""
        backend = mock_backend(_json_handler({"models": []}))

        status = await backend.check_connection()

        assert status.is_connected is True
        assert status.status == "Connected to Ollama"
        assert backend.is_connected is True

    @pytest.mark.asyncio
    async def test_failed(self, mock_backend):
        """Test that errors become a failed status instead of raising."""
        backend = mock_backend(lambda request: httpx.Response(500))

        status = await backend.check_connection()

        assert status.is_connected is False
        assert status.status == "Connection failed"

    @pytest.mark.asyncio
    async def test_not_configured(self, mock_backend):
        """Test the status when no host is set."""
        backend = mock_backend(_json_handler({}), host="")

        status = await backend.check_connection()

        assert status.is_connected is False
        assert status.status == "Not configured"

    @pytest.mark.asyncio
    async def test_context_manager_closes_client(self, mock_backend):
        """Test that leaving the context closes the HTTP client."""
        backend = mock_backend(_json_handler({"models": []}))

        async with backend:
            await backend.fetch_available_models()

        assert backend._client.is_closed
