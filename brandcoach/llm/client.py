"""
LLM client abstraction for the coaching inference adapter.

Provides async interface for LLM calls with:
- Structured logging of requests/responses
- Timeout handling with one retry on timeout or rate limit
- Usage tracking (tokens)
- Three client roles (coaching, charter, writing)

Supported providers:
- anthropic: Claude models
- deepseek: DeepSeek models (OpenAI-compatible API)
"""

import asyncio
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional

import httpx
import structlog

from brandcoach.core.config import settings
from brandcoach.core.exceptions import (
    ConfigurationError,
    LLMRateLimitError,
    LLMTimeoutError,
    MalformedResponseError,
    TransportError,
)

log = structlog.get_logger(__name__)


LLMClientType = Literal["coaching", "charter", "writing"]


# =============================================================================
# Default configurations for each client role
# =============================================================================

COACHING_DEFAULTS = dict(
    provider="anthropic",
    model="claude-sonnet-4-5-20250929",
    temperature=0.8,  # Conversational, varied phrasing
    max_tokens=1500,
    timeout=45.0,
)

CHARTER_DEFAULTS = dict(
    provider="anthropic",
    model="claude-haiku-4-5",
    temperature=0.7,
    max_tokens=1500,
    timeout=30.0,
)

WRITING_DEFAULTS = dict(
    provider="anthropic",
    model="claude-sonnet-4-5-20250929",
    temperature=0.7,
    max_tokens=3000,  # Long-form text
    timeout=90.0,
)

DEFAULTS_MAP: Dict[LLMClientType, Dict[str, Any]] = {
    "coaching": COACHING_DEFAULTS,
    "charter": CHARTER_DEFAULTS,
    "writing": WRITING_DEFAULTS,
}

PROVIDER_MODELS: Dict[str, str] = {
    "deepseek": "deepseek-chat",
}


# =============================================================================
# Response and Base Classes
# =============================================================================


@dataclass
class LLMResponse:
    """Standardized LLM response."""

    content: str
    model: str
    usage: Dict[str, int] = field(default_factory=dict)
    latency_ms: float = 0.0
    raw_response: Optional[Dict[str, Any]] = None


class LLMClient(ABC):
    """Abstract base for LLM providers."""

    provider_name: str = "unknown"
    max_retries: int = 1  # 2 total attempts
    base_delay: float = 1.0  # seconds

    def __init__(
        self,
        model: str,
        temperature: float,
        max_tokens: int,
        timeout: float,
        client_type: LLMClientType,
    ):
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.timeout = timeout
        self.client_type = client_type

    async def complete(
        self,
        prompt: Optional[str] = None,
        system: Optional[str] = None,
        messages: Optional[List[Dict[str, str]]] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> LLMResponse:
        """
        Generate a completion from the LLM.

        Args:
            prompt: Single user message (ignored when messages is given)
            system: Optional system prompt
            messages: Full multi-turn conversation as [{role, content}]
            temperature: Sampling temperature (defaults to init value)
            max_tokens: Max tokens (defaults to init value)
            timeout: Timeout override in seconds

        Returns:
            LLMResponse with content and usage stats

        Raises:
            LLMTimeoutError: After all retries exhausted on timeout
            LLMRateLimitError: After all retries exhausted on rate limit (429)
            TransportError: On other HTTP or network failures (no retry)
            MalformedResponseError: On a 2xx body that is not the provider's JSON shape
        """
        if messages is None:
            messages = [{"role": "user", "content": prompt or ""}]
        temperature = self.temperature if temperature is None else temperature
        max_tokens = self.max_tokens if max_tokens is None else max_tokens
        timeout = self.timeout if timeout is None else timeout

        payload = self._build_payload(messages, system, temperature, max_tokens)

        for attempt in range(self.max_retries + 1):
            start = time.perf_counter()

            log.debug(
                "llm_call_start",
                provider=self.provider_name,
                client_type=self.client_type,
                model=self.model,
                message_count=len(messages),
                system_length=len(system) if system else 0,
                temperature=temperature,
                max_tokens=max_tokens,
                attempt=attempt + 1,
            )

            try:
                async with httpx.AsyncClient(timeout=timeout) as client:
                    response = await client.post(
                        self._endpoint(),
                        headers=self._headers(),
                        json=payload,
                    )
                    response.raise_for_status()

                latency_ms = (time.perf_counter() - start) * 1000
                data, content, usage = self._decode(response)

                log.info(
                    "llm_call_complete",
                    provider=self.provider_name,
                    client_type=self.client_type,
                    model=self.model,
                    latency_ms=round(latency_ms, 2),
                    input_tokens=usage["input_tokens"],
                    output_tokens=usage["output_tokens"],
                    attempt=attempt + 1,
                )

                return LLMResponse(
                    content=content,
                    model=data.get("model", self.model),
                    usage=usage,
                    latency_ms=latency_ms,
                    raw_response=data,
                )

            except httpx.TimeoutException as e:
                log.warning(
                    "llm_timeout",
                    provider=self.provider_name,
                    attempt=attempt + 1,
                    max_retries=self.max_retries,
                    timeout_seconds=timeout,
                )
                if attempt < self.max_retries:
                    await asyncio.sleep(self.base_delay * (2**attempt))
                else:
                    raise LLMTimeoutError(
                        f"LLM call timed out after {self.max_retries + 1} attempts "
                        f"(timeout={timeout}s)"
                    ) from e

            except httpx.HTTPStatusError as e:
                status_code = e.response.status_code
                if status_code == 429:
                    log.warning(
                        "llm_rate_limit",
                        provider=self.provider_name,
                        attempt=attempt + 1,
                        max_retries=self.max_retries,
                    )
                    if attempt < self.max_retries:
                        await asyncio.sleep(self.base_delay * (2**attempt))
                    else:
                        raise LLMRateLimitError(
                            f"Rate limit exceeded after {self.max_retries + 1} attempts"
                        ) from e
                else:
                    log.error(
                        "llm_http_error",
                        provider=self.provider_name,
                        status_code=status_code,
                    )
                    raise TransportError(
                        f"{self.provider_name} returned HTTP {status_code}"
                    ) from e

            except httpx.HTTPError as e:
                log.error(
                    "llm_network_error",
                    provider=self.provider_name,
                    error=str(e),
                )
                raise TransportError(f"{self.provider_name} unreachable: {e}") from e

        # Unreachable: loop either returns LLMResponse or raises an exception
        assert False, "unreachable"

    def _decode(self, response: httpx.Response) -> tuple[Dict[str, Any], str, Dict[str, int]]:
        """Decode a 2xx body into (data, content, usage).

        Raises:
            MalformedResponseError: The body is not a JSON object of the provider's shape
        """
        try:
            data = response.json()
            if not isinstance(data, dict):
                raise ValueError(f"expected a JSON object, got {type(data).__name__}")
            content, usage = self._parse(data)
        except (ValueError, KeyError, IndexError, TypeError, AttributeError) as e:
            log.error(
                "llm_invalid_body",
                provider=self.provider_name,
                status_code=response.status_code,
                error=str(e),
            )
            raise MalformedResponseError(
                f"{self.provider_name} returned an unreadable body", raw=response.text[:500]
            ) from e
        return data, content, usage

    @abstractmethod
    def _endpoint(self) -> str: ...

    @abstractmethod
    def _headers(self) -> Dict[str, str]: ...

    @abstractmethod
    def _build_payload(
        self,
        messages: List[Dict[str, str]],
        system: Optional[str],
        temperature: float,
        max_tokens: int,
    ) -> Dict[str, Any]: ...

    @abstractmethod
    def _parse(self, data: Dict[str, Any]) -> tuple[str, Dict[str, int]]: ...


# =============================================================================
# Anthropic Client
# =============================================================================


class AnthropicClient(LLMClient):
    """Anthropic Claude API client using the Messages API."""

    provider_name = "anthropic"

    def __init__(
        self,
        model: str,
        temperature: float,
        max_tokens: int,
        timeout: float,
        client_type: LLMClientType,
        api_key: Optional[str] = None,
    ):
        """
        Initialize Anthropic client.

        Raises:
            ConfigurationError: If API key is not configured
        """
        super().__init__(model, temperature, max_tokens, timeout, client_type)
        self.api_key = api_key or settings.anthropic_api_key
        self.base_url = "https://api.anthropic.com/v1"

        if not self.api_key:
            raise ConfigurationError("ANTHROPIC_API_KEY not configured. Set it in .env.")

        log.info(
            "anthropic_client_initialized",
            client_type=self.client_type,
            model=self.model,
            timeout=self.timeout,
        )

    def _endpoint(self) -> str:
        return f"{self.base_url}/messages"

    def _headers(self) -> Dict[str, str]:
        return {
            "x-api-key": self.api_key,
            "content-type": "application/json",
            "anthropic-version": "2023-06-01",
        }

    def _build_payload(self, messages, system, temperature, max_tokens):
        payload: Dict[str, Any] = {
            "model": self.model,
            "max_tokens": max_tokens,
            "messages": messages,
            "temperature": temperature,
        }
        if system:
            payload["system"] = system
        return payload

    def _parse(self, data):
        content = ""
        if data.get("content"):
            content = data["content"][0].get("text", "")
        usage = {
            "input_tokens": data.get("usage", {}).get("input_tokens", 0),
            "output_tokens": data.get("usage", {}).get("output_tokens", 0),
        }
        return content, usage


# =============================================================================
# DeepSeek Client
# =============================================================================


class DeepSeekClient(LLMClient):
    """
    DeepSeek API client (OpenAI-compatible chat completions).

    API Docs: https://platform.deepseek.com/api-docs/
    """

    provider_name = "deepseek"

    def __init__(
        self,
        model: str,
        temperature: float,
        max_tokens: int,
        timeout: float,
        client_type: LLMClientType,
        api_key: Optional[str] = None,
    ):
        super().__init__(model, temperature, max_tokens, timeout, client_type)
        self.api_key = api_key or settings.deepseek_api_key
        self.base_url = "https://api.deepseek.com"

        if not self.api_key:
            raise ConfigurationError("DEEPSEEK_API_KEY not configured. Set it in .env.")

        log.info(
            "deepseek_client_initialized",
            provider=self.provider_name,
            client_type=self.client_type,
            model=self.model,
            timeout=self.timeout,
        )

    def _endpoint(self) -> str:
        return f"{self.base_url}/chat/completions"

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    def _build_payload(self, messages, system, temperature, max_tokens):
        chat = [{"role": "system", "content": system}] if system else []
        chat.extend(messages)
        return {
            "model": self.model,
            "messages": chat,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }

    def _parse(self, data):
        content = ""
        if data.get("choices"):
            content = data["choices"][0].get("message", {}).get("content", "") or ""
        usage = {
            "input_tokens": data.get("usage", {}).get("prompt_tokens", 0),
            "output_tokens": data.get("usage", {}).get("completion_tokens", 0),
        }
        return content, usage


# =============================================================================
# Client Factory Functions
# =============================================================================


PROVIDER_CLASSES: Dict[str, type] = {
    "anthropic": AnthropicClient,
    "deepseek": DeepSeekClient,
}


def get_llm_client(client_type: LLMClientType) -> LLMClient:
    """
    Build the client for a role from DEFAULTS_MAP.

    LLM_<ROLE>_PROVIDER switches the provider; the role's temperature, token
    budget and timeout are kept and the model becomes that provider's default.

    Raises:
        ConfigurationError: If unknown provider configured or API key missing
    """
    defaults = DEFAULTS_MAP[client_type]

    provider = getattr(settings, f"llm_{client_type}_provider", None) or defaults["provider"]
    client_class = PROVIDER_CLASSES.get(provider)
    if client_class is None:
        raise ConfigurationError(
            f"Unknown LLM provider '{provider}' for {client_type}. "
            f"Supported providers: {', '.join(PROVIDER_CLASSES)}"
        )

    model = defaults["model"] if provider == defaults["provider"] else PROVIDER_MODELS[provider]
    return client_class(
        model=model,
        temperature=defaults["temperature"],
        max_tokens=defaults["max_tokens"],
        timeout=defaults["timeout"],
        client_type=client_type,
    )
