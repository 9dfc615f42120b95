"""
Claude AI Client — Anthropic Messages API over httpx.

- One HTTP request per ``complete()`` call; retry policy belongs to the caller
- Provider configuration is a value object handed in at construction
- Errors are classified into transient and non-retryable (auth/config)
- Balanced-brace JSON object extraction from mixed prose/JSON responses
- Request, failure and token counters for the status endpoint
"""

import json
import time
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx
import structlog

from app.config import Settings, get_settings

logger = structlog.get_logger(__name__)


# ─── JSON Object Extractor ─────────────────────────────────────
#
# Models often wrap the workflow in prose ("Sure! Here is your workflow: {...}")
# or markdown fences. Only the first balanced {...} span is taken.

def extract_json_object(text: Optional[str]) -> Dict[str, Any]:
    """Parse the first balanced ``{...}`` span found in ``text``.

    Braces inside JSON string literals (including escaped quotes) do not
    count towards nesting.

    Raises:
        ValueError: Empty text, no balanced span, invalid JSON, or not an object
    """
    if not text or not text.strip():
        raise ValueError("Empty response")

    start = text.find("{")
    if start == -1:
        raise ValueError("No JSON found in response")

    depth = 0
    in_string = False
    escape_next = False
    for i in range(start, len(text)):
        c = text[i]
        if escape_next:
            escape_next = False
            continue
        if in_string:
            if c == "\\":
                escape_next = True
            elif c == '"':
                in_string = False
            continue
        if c == '"':
            in_string = True
        elif c == "{":
            depth += 1
        elif c == "}":
            depth -= 1
            if depth == 0:
                try:
                    parsed = json.loads(text[start:i + 1])
                except json.JSONDecodeError as e:
                    raise ValueError(f"Failed to parse workflow JSON: {e}") from e
                if not isinstance(parsed, dict):
                    raise ValueError("Extracted JSON is not an object")
                return parsed

    raise ValueError("No JSON found in response")


# ─── Errors ────────────────────────────────────────────────────

class ProviderError(Exception):
    """Language-model call failed; retrying may help."""


class ProviderTimeoutError(ProviderError):
    """Language-model call exceeded its time budget."""


class ProviderAuthError(ProviderError):
    """Missing or rejected credentials; retrying will not help."""


# ─── Configuration ─────────────────────────────────────────────

@dataclass(frozen=True)
class ProviderConfig:
    """Everything needed to reach the model provider."""
    api_key: str
    api_base: str
    model: str
    max_tokens: int = 4000
    temperature: float = 0.7
    timeout: float = 120.0

    @classmethod
    def from_settings(cls, settings: Settings) -> "ProviderConfig":
        return cls(
            api_key=settings.ANTHROPIC_API_KEY,
            api_base=settings.CLAUDE_API_BASE,
            model=settings.CLAUDE_MODEL,
            max_tokens=settings.CLAUDE_MAX_TOKENS,
            temperature=settings.CLAUDE_TEMPERATURE,
            timeout=float(settings.CLAUDE_TIMEOUT),
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)


# ─── Usage counters ────────────────────────────────────────────

@dataclass
class ProviderUsage:
    """Process-local request and token counters reported by ``/ai/status``."""
    requests: int = 0
    failed_requests: int = 0
    timeouts: int = 0
    input_tokens: int = 0
    output_tokens: int = 0
    last_latency_ms: Optional[float] = None
    last_request_at: Optional[str] = None

    def _touch(self, latency_ms: float) -> None:
        self.requests += 1
        self.last_latency_ms = round(latency_ms, 1)
        self.last_request_at = datetime.now(timezone.utc).isoformat()

    def record_success(self, input_tokens: int, output_tokens: int, latency_ms: float) -> None:
        self._touch(latency_ms)
        self.input_tokens += input_tokens
        self.output_tokens += output_tokens

    def record_failure(self, latency_ms: float, timed_out: bool = False) -> None:
        self._touch(latency_ms)
        self.failed_requests += 1
        if timed_out:
            self.timeouts += 1

    def as_dict(self) -> Dict[str, Any]:
        return {**asdict(self), "total_tokens": self.input_tokens + self.output_tokens}


# ─── Main Claude Client ───────────────────────────────────────

class ClaudeClient:
    """Chat-completion client for the Anthropic Messages API."""

    API_VERSION = "2023-06-01"

    def __init__(self, config: ProviderConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config
        self.usage = ProviderUsage()
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def is_configured(self) -> bool:
        return self.config.is_configured

    @property
    def is_connected(self) -> bool:
        return self._client is not None

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.config.api_base,
                headers={
                    "x-api-key": self.config.api_key,
                    "anthropic-version": self.API_VERSION,
                    "content-type": "application/json",
                },
                timeout=httpx.Timeout(
                    connect=10.0,
                    read=self.config.timeout,
                    write=30.0,
                    pool=10.0,
                ),
                http2=True,
                limits=httpx.Limits(
                    max_connections=20,
                    max_keepalive_connections=10,
                    keepalive_expiry=300,
                ),
                transport=self._transport,
            )
        return self._client

    async def disconnect(self):
        """Gracefully close connections."""
        if self._client:
            await self._client.aclose()
            self._client = None
        logger.info("Claude AI client disconnected")

    @staticmethod
    def _to_api_messages(system: str, messages: List[Dict[str, str]]):
        """Split system-role turns out of the history; the API takes them separately."""
        system_parts = [system] if system else []
        api_messages = []
        for message in messages:
            if message["role"] == "system":
                system_parts.append(message["content"])
            else:
                api_messages.append({"role": message["role"], "content": message["content"]})
        return "\n\n".join(system_parts), api_messages

    async def complete(self, system: str, messages: List[Dict[str, str]]) -> Optional[str]:
        """Request one completion for a conversation.

        Args:
            system: System instruction
            messages: Ordered {"role", "content"} history, oldest first

        Returns:
            Concatenated text of the response, or None when it has no text

        Raises:
            ProviderAuthError: No API key, or the key was rejected
            ProviderTimeoutError: The request timed out
            ProviderError: Any other failed request
        """
        if not self.is_configured:
            raise ProviderAuthError("Claude API key not configured")

        system_prompt, api_messages = self._to_api_messages(system, messages)
        payload: Dict[str, Any] = {
            "model": self.config.model,
            "max_tokens": self.config.max_tokens,
            "temperature": self.config.temperature,
            "messages": api_messages,
        }
        if system_prompt:
            payload["system"] = system_prompt

        client = self._ensure_client()
        start_time = time.monotonic()
        try:
            response = await client.post("/messages", json=payload)
        except httpx.TimeoutException as e:
            self.usage.record_failure((time.monotonic() - start_time) * 1000, timed_out=True)
            logger.warning("Claude request timeout")
            raise ProviderTimeoutError("Request timed out") from e
        except httpx.HTTPError as e:
            self.usage.record_failure((time.monotonic() - start_time) * 1000)
            logger.warning("Claude request failed", error=str(e))
            raise ProviderError(f"Request failed: {e}") from e

        duration_ms = (time.monotonic() - start_time) * 1000

        if response.status_code in (401, 403):
            self.usage.record_failure(duration_ms)
            logger.error("Claude authentication failed", status=response.status_code)
            raise ProviderAuthError(f"API authentication failed ({response.status_code})")

        if response.status_code != 200:
            body = response.text
            self.usage.record_failure(duration_ms)
            logger.error("Claude API error", status=response.status_code, body=body[:500])
            raise ProviderError(f"API error {response.status_code}: {body[:200]}")

        data = response.json()
        usage = data.get("usage", {})
        self.usage.record_success(
            input_tokens=usage.get("input_tokens", 0),
            output_tokens=usage.get("output_tokens", 0),
            latency_ms=duration_ms,
        )

        text = "".join(
            block.get("text", "")
            for block in data.get("content", [])
            if block.get("type") == "text"
        )
        return text or None

    async def get_status(self) -> Dict[str, Any]:
        """Configuration state and usage, for the status endpoint."""
        return {
            "configured": self.is_configured,
            "connected": self.is_connected,
            "model": self.config.model,
            "usage": self.usage.as_dict(),
        }


# ─── Singleton ─────────────────────────────────────────────────

_claude_client: Optional[ClaudeClient] = None


async def get_claude_client() -> ClaudeClient:
    """Get or create the singleton Claude client."""
    global _claude_client
    if _claude_client is None:
        _claude_client = ClaudeClient(ProviderConfig.from_settings(get_settings()))
    return _claude_client


async def close_claude_client() -> None:
    global _claude_client
    if _claude_client is not None:
        await _claude_client.disconnect()
        _claude_client = None
