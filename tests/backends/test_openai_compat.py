"""
Tests for OpenAICompatibleBackend.

Runs against a local aiohttp test server speaking the OpenAI wire format.
"""

import json

import pytest
import pytest_asyncio
from aiohttp import test_utils, web

from premerge_review.backends.openai_compat import OpenAICompatibleBackend
from premerge_review.review.backend import collect_text
from premerge_review.review.errors import BackendError, ModelInaccessibleError, is_inaccessible_error


def sse_body(*fragments: str) -> str:
    lines = []
    for fragment in fragments:
        chunk = {"choices": [{"delta": {"content": fragment}}]}
        lines.append(f"data: {json.dumps(chunk)}\n\n")
    lines.append("data: [DONE]\n\n")
    return "".join(lines)


@pytest_asyncio.fixture
async def openai_server():
    """Local server with /v1/models and /v1/chat/completions."""
    requests = []

    async def models(request):
        return web.json_response({
            "object": "list",
            "data": [
                {"id": "gpt-4o", "owned_by": "openai"},
                {"id": "local-model", "context_length": 4096},
            ],
        })

    async def completions(request):
        payload = await request.json()
        requests.append({"payload": payload, "auth": request.headers.get("Authorization")})
        if payload["model"] == "forbidden":
            return web.Response(status=403, text='{"error": "no access to model"}')
        if payload["model"] == "broken":
            return web.Response(status=500, text="internal error")
        return web.Response(
            text=sse_body("Looks ", "good."),
            content_type="text/event-stream",
        )

    app = web.Application()
    app.router.add_get("/v1/models", models)
    app.router.add_post("/v1/chat/completions", completions)

    server = test_utils.TestServer(app)
    await server.start_server()
    server.recorded = requests
    yield server
    await server.close()


def backend_for(server: test_utils.TestServer, **kwargs) -> OpenAICompatibleBackend:
    return OpenAICompatibleBackend(base_url=str(server.make_url("/v1")), **kwargs)


# =============================================================================
# UNIT TESTS: wire helpers
# =============================================================================

class TestParseStreamLine:
    """Tests for SSE line parsing."""

    def test_content_delta(self):
        line = 'data: {"choices": [{"delta": {"content": "hi"}}]}'
        assert OpenAICompatibleBackend.parse_stream_line(line) == "hi"

    @pytest.mark.parametrize("line", [
        "data: [DONE]",
        ": keep-alive",
        "",
        "data: {not json",
        'data: {"choices": []}',
        'data: {"choices": [{"delta": {"role": "assistant"}}]}',
    ])
    def test_lines_without_content(self, line):
        assert OpenAICompatibleBackend.parse_stream_line(line) is None


class TestErrorForStatus:
    """Tests for HTTP status mapping."""

    @pytest.mark.parametrize("status", [401, 403, 429])
    def test_inaccessible_statuses(self, status):
        error = OpenAICompatibleBackend.error_for_status(status, "nope")

        assert isinstance(error, ModelInaccessibleError)
        assert error.status == status
        assert is_inaccessible_error(error)

    def test_other_status(self):
        error = OpenAICompatibleBackend.error_for_status(500, "internal error")

        assert type(error) is BackendError
        assert "HTTP 500" in str(error)


class TestModelFromPayload:
    """Tests for registry entries."""

    def test_known_context_window(self):
        model = OpenAICompatibleBackend.model_from_payload({"id": "gpt-4o", "owned_by": "openai"})

        assert model.family == "gpt-4o"
        assert model.max_input_tokens == 128000
        assert model.vendor == "openai"

    def test_reported_context_length(self):
        model = OpenAICompatibleBackend.model_from_payload({"id": "local-model", "context_length": 4096})

        assert model.max_input_tokens == 4096
        assert model.family == "local-model"

    def test_unknown_capacity(self):
        assert OpenAICompatibleBackend.model_from_payload({"id": "mystery"}).max_input_tokens is None


# =============================================================================
# INTEGRATION TESTS: local server
# =============================================================================

class TestAgainstServer:
    """Round trips through a real HTTP server."""

    @pytest.mark.asyncio
    async def test_list_models(self, openai_server):
        models = await backend_for(openai_server).list_models()

        assert [m.id for m in models] == ["gpt-4o", "local-model"]

    @pytest.mark.asyncio
    async def test_streamed_generation(self, openai_server):
        backend = backend_for(openai_server, api_key="sk-test")

        text = await collect_text(backend, "Review this", "gpt-4o")

        assert text == "Looks good."
        request = openai_server.recorded[0]
        assert request["auth"] == "Bearer sk-test"
        assert request["payload"]["stream"] is True
        assert request["payload"]["messages"] == [{"role": "user", "content": "Review this"}]

    @pytest.mark.asyncio
    async def test_forbidden_model(self, openai_server):
        with pytest.raises(ModelInaccessibleError) as exc_info:
            await collect_text(backend_for(openai_server), "x", "forbidden")

        assert exc_info.value.status == 403

    @pytest.mark.asyncio
    async def test_server_error(self, openai_server):
        with pytest.raises(BackendError, match="HTTP 500"):
            await collect_text(backend_for(openai_server), "x", "broken")

    @pytest.mark.asyncio
    async def test_unreachable_server(self):
        backend = OpenAICompatibleBackend(base_url="http://127.0.0.1:9/v1", timeout=2)

        with pytest.raises(BackendError):
            await backend.list_models()
