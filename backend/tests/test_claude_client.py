"""Tests for the Claude provider client and JSON object extraction."""

import json

import httpx
import pytest

from app.config import Settings
from integrations.claude_client import (
    ClaudeClient,
    ProviderAuthError,
    ProviderConfig,
    ProviderError,
    ProviderTimeoutError,
    ProviderUsage,
    extract_json_object,
)


def _config(**overrides) -> ProviderConfig:
    values = dict(
        api_key="sk-test",
        api_base="https://claude.test/v1",
        model="claude-test",
        max_tokens=1000,
        temperature=0.5,
        timeout=5.0,
    )
    values.update(overrides)
    return ProviderConfig(**values)


def _client(handler, **overrides) -> ClaudeClient:
    return ClaudeClient(_config(**overrides), transport=httpx.MockTransport(handler))


# ─── extract_json_object ───

@pytest.mark.unit
class TestExtractJsonObject:

    def test_plain_object(self):
        assert extract_json_object('{"a": 1}') == {"a": 1}

    def test_object_inside_prose(self, make_workflow):
        wf = make_workflow(12)
        text = f"Sure! Here is your workflow: {json.dumps(wf)} Let me know if you need changes."
        assert extract_json_object(text) == wf

    def test_markdown_fence(self):
        text = 'Here you go:\n```json\n{"nodes": [], "connections": {}}\n```'
        assert extract_json_object(text) == {"nodes": [], "connections": {}}

    def test_first_object_wins(self):
        assert extract_json_object('{"first": true} and {"second": true}') == {"first": True}

    def test_braces_inside_strings_ignored(self):
        text = 'x {"code": "if (a) { return \\"}\\"; }", "n": 2} y'
        assert extract_json_object(text) == {"code": 'if (a) { return "}"; }', "n": 2}

    @pytest.mark.parametrize("text", [None, "", "   ", "no json here", "[1, 2, 3]"])
    def test_nothing_to_extract(self, text):
        with pytest.raises(ValueError):
            extract_json_object(text)

    def test_unbalanced_object(self):
        with pytest.raises(ValueError, match="No JSON"):
            extract_json_object('{"nodes": [')

    def test_invalid_json_in_span(self):
        with pytest.raises(ValueError, match="Failed to parse"):
            extract_json_object("{nodes: [1, 2]}")


# ─── ProviderConfig ───

@pytest.mark.unit
class TestProviderConfig:

    def test_from_settings(self):
        settings = Settings(
            ANTHROPIC_API_KEY="sk-abc",
            CLAUDE_MODEL="claude-x",
            CLAUDE_MAX_TOKENS=1234,
            CLAUDE_TEMPERATURE=0.1,
            CLAUDE_TIMEOUT=9,
        )
        config = ProviderConfig.from_settings(settings)
        assert config.api_key == "sk-abc"
        assert config.model == "claude-x"
        assert config.max_tokens == 1234
        assert config.temperature == 0.1
        assert config.timeout == 9.0
        assert config.is_configured is True

    def test_empty_key_not_configured(self):
        assert _config(api_key="").is_configured is False


# ─── ClaudeClient.complete ───

@pytest.mark.unit
class TestClaudeClientComplete:

    async def test_success_concatenates_text_blocks(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["headers"] = request.headers
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={
                "content": [
                    {"type": "text", "text": "Here: "},
                    {"type": "tool_use", "id": "t1", "name": "x", "input": {}},
                    {"type": "text", "text": '{"a": 1}'},
                ],
                "usage": {"input_tokens": 11, "output_tokens": 7},
            })

        client = _client(handler)
        text = await client.complete("be helpful", [{"role": "user", "content": "hi"}])
        await client.disconnect()

        assert text == 'Here: {"a": 1}'
        assert seen["url"] == "https://claude.test/v1/messages"
        assert seen["headers"]["x-api-key"] == "sk-test"
        assert seen["body"]["model"] == "claude-test"
        assert seen["body"]["max_tokens"] == 1000
        assert seen["body"]["system"] == "be helpful"
        assert seen["body"]["messages"] == [{"role": "user", "content": "hi"}]
        assert client.usage.input_tokens == 11
        assert client.usage.output_tokens == 7

    async def test_system_role_messages_folded_into_system(self):
        seen = {}

        def handler(request):
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"content": [{"type": "text", "text": "ok"}]})

        client = _client(handler)
        await client.complete("base", [
            {"role": "system", "content": "extra rule"},
            {"role": "user", "content": "build it"},
        ])
        assert seen["body"]["system"] == "base\n\nextra rule"
        assert seen["body"]["messages"] == [{"role": "user", "content": "build it"}]

    async def test_empty_content_returns_none(self):
        client = _client(lambda request: httpx.Response(200, json={"content": []}))
        assert await client.complete("s", [{"role": "user", "content": "x"}]) is None

    @pytest.mark.parametrize("status_code", [401, 403])
    async def test_auth_failure(self, status_code):
        client = _client(lambda request: httpx.Response(status_code, json={"error": "bad key"}))
        with pytest.raises(ProviderAuthError):
            await client.complete("s", [{"role": "user", "content": "x"}])
        assert client.usage.failed_requests == 1

    @pytest.mark.parametrize("status_code", [429, 500, 529])
    async def test_server_errors_are_transient(self, status_code):
        client = _client(lambda request: httpx.Response(status_code, text="overloaded"))
        with pytest.raises(ProviderError) as exc_info:
            await client.complete("s", [{"role": "user", "content": "x"}])
        assert not isinstance(exc_info.value, ProviderAuthError)
        assert str(status_code) in str(exc_info.value)

    async def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        client = _client(handler)
        with pytest.raises(ProviderTimeoutError):
            await client.complete("s", [{"role": "user", "content": "x"}])

    async def test_connection_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        client = _client(handler)
        with pytest.raises(ProviderError, match="Request failed"):
            await client.complete("s", [{"role": "user", "content": "x"}])

    async def test_missing_key_fails_without_request(self):
        def handler(request):
            raise AssertionError("no request expected")

        client = _client(handler, api_key="")
        with pytest.raises(ProviderAuthError, match="not configured"):
            await client.complete("s", [{"role": "user", "content": "x"}])
        assert client.is_connected is False

    async def test_status(self):
        client = _client(lambda request: httpx.Response(200, json={"content": []}))
        status = await client.get_status()
        assert status["configured"] is True
        assert status["model"] == "claude-test"
        assert status["usage"]["requests"] == 0


@pytest.mark.unit
class TestProviderUsage:

    def test_failures_do_not_count_tokens(self):
        usage = ProviderUsage()
        usage.record_success(100, 50, 10.0)
        usage.record_failure(12.0)
        usage.record_failure(120000.0, timed_out=True)
        stats = usage.as_dict()
        assert stats["requests"] == 3
        assert stats["failed_requests"] == 2
        assert stats["timeouts"] == 1
        assert stats["total_tokens"] == 150
        assert stats["last_latency_ms"] == 120000.0
        assert stats["last_request_at"] is not None

    async def test_timeout_counted_by_client(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        client = _client(handler)
        with pytest.raises(ProviderTimeoutError):
            await client.complete("s", [{"role": "user", "content": "x"}])
        status = await client.get_status()
        assert status["usage"]["timeouts"] == 1
        assert status["usage"]["failed_requests"] == 1
