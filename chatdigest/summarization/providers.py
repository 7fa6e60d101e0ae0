"""
AI completion backends.

Each backend wraps one vendor SDK and performs exactly one attempt per
call: SDK-level retries are disabled because failover between backends is
handled by ``ProviderGateway``.
"""

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import anthropic
import openai
from anthropic import AsyncAnthropic
from openai import AsyncAzureOpenAI, AsyncOpenAI

from ..exceptions import ProviderError
from ..models.base import BaseModel

logger = logging.getLogger(__name__)

GEMINI_OPENAI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/openai/"


@dataclass
class CompletionRequest(BaseModel):
    """Backend-independent completion parameters."""
    messages: List[Dict[str, str]]
    max_tokens: int = 4000
    temperature: float = 0.7
    top_p: Optional[float] = 0.95
    response_format: Optional[Dict[str, Any]] = None


@dataclass
class ProviderCallResult(BaseModel):
    """Response from a backend, tagged with the gateway slot that answered."""
    content: str
    finish_reason: Optional[str]
    model: str
    usage: Dict[str, int] = field(default_factory=dict)
    backend: str = "primary"

    @property
    def truncated(self) -> bool:
        return self.finish_reason in ("length", "max_tokens")

    @property
    def total_tokens(self) -> int:
        return self.usage.get("total_tokens", 0)


class CompletionBackend(ABC):
    """A single AI vendor endpoint."""

    name: str = "backend"

    @abstractmethod
    async def complete(self, request: CompletionRequest) -> ProviderCallResult:
        """Run one completion.

        Raises:
            ProviderError: If the vendor call fails or returns nothing usable
        """

    async def close(self) -> None:
        """Release client resources."""


class OpenAICompatibleBackend(CompletionBackend):
    """Backend for OpenAI-compatible chat-completion APIs (Gemini, Azure OpenAI)."""

    def __init__(self,
                 api_key: str,
                 model: str,
                 base_url: Optional[str] = GEMINI_OPENAI_BASE_URL,
                 timeout: float = 60.0,
                 supports_structured_output: bool = True,
                 name: str = "gemini",
                 client: Optional[AsyncOpenAI] = None):
        """Initialize the backend.

        Args:
            api_key: API key for the endpoint
            model: Model or deployment name
            base_url: OpenAI-compatible endpoint URL
            timeout: Request timeout in seconds
            supports_structured_output: Send ``response_format`` when True
            name: Label used in logs and errors
            client: Pre-built client (mainly for tests)
        """
        self.name = name
        self.model = model
        self.timeout = timeout
        self.supports_structured_output = supports_structured_output
        self._client = client or AsyncOpenAI(
            api_key=api_key,
            base_url=base_url,
            timeout=timeout,
            max_retries=0,
        )
        logger.info(f"{name} backend initialized: model={model}, base_url={base_url}")

    @classmethod
    def for_azure(cls,
                  api_key: str,
                  endpoint: str,
                  deployment: str,
                  api_version: str,
                  timeout: float = 60.0) -> "OpenAICompatibleBackend":
        """Build a backend for an Azure OpenAI deployment."""
        client = AsyncAzureOpenAI(
            api_key=api_key,
            azure_endpoint=endpoint,
            api_version=api_version,
            timeout=timeout,
            max_retries=0,
        )
        return cls(
            api_key=api_key,
            model=deployment,
            base_url=None,
            timeout=timeout,
            name="azure",
            client=client,
        )

    async def complete(self, request: CompletionRequest) -> ProviderCallResult:
        params: Dict[str, Any] = {
            "model": self.model,
            "messages": request.messages,
            "max_tokens": request.max_tokens,
            "temperature": request.temperature,
        }
        if request.top_p is not None:
            params["top_p"] = request.top_p
        if request.response_format and self.supports_structured_output:
            params["response_format"] = request.response_format

        try:
            response = await self._client.chat.completions.create(**params)
        except openai.APITimeoutError as e:
            raise ProviderError(self.name, f"Request timed out after {self.timeout}s",
                                api_error_code="timeout", cause=e)
        except openai.APIConnectionError as e:
            raise ProviderError(self.name, f"Connection failed: {e}",
                                api_error_code="network", cause=e)
        except openai.APIStatusError as e:
            raise ProviderError(self.name, str(e), status_code=e.status_code,
                                api_error_code=getattr(e, "code", None), cause=e)
        except openai.OpenAIError as e:
            raise ProviderError(self.name, str(e), cause=e)

        if not response.choices:
            raise ProviderError(self.name, "Response contained no choices", api_error_code="empty_response")

        choice = response.choices[0]
        content = choice.message.content or ""
        if choice.finish_reason == "content_filter" and not content.strip():
            raise ProviderError(self.name, "Response blocked by content filter",
                                status_code=400, api_error_code="content_filter")

        usage = {}
        if response.usage is not None:
            usage = {
                "prompt_tokens": response.usage.prompt_tokens,
                "completion_tokens": response.usage.completion_tokens,
                "total_tokens": response.usage.total_tokens,
            }

        return ProviderCallResult(
            content=content,
            finish_reason=choice.finish_reason,
            model=getattr(response, "model", None) or self.model,
            usage=usage,
        )

    async def close(self) -> None:
        await self._client.close()


class ClaudeBackend(CompletionBackend):
    """Backend for the Anthropic Messages API."""

    name = "claude"

    def __init__(self,
                 api_key: str,
                 model: str,
                 base_url: Optional[str] = None,
                 timeout: float = 60.0,
                 client: Optional[AsyncAnthropic] = None):
        self.model = model
        self.timeout = timeout

        client_kwargs: Dict[str, Any] = {"api_key": api_key, "timeout": timeout, "max_retries": 0}
        if base_url:
            client_kwargs["base_url"] = base_url
        self._client = client or AsyncAnthropic(**client_kwargs)

        if api_key and len(api_key) > 10:
            masked_key = f"{api_key[:10]}...{api_key[-4:]}"
            logger.info(f"Claude backend initialized with API key: {masked_key}, model: {model}")

    def _build_request_params(self, request: CompletionRequest) -> Dict[str, Any]:
        """Split system messages out and describe the schema in the system prompt."""
        system_parts = [m["content"] for m in request.messages if m["role"] == "system"]
        if request.response_format:
            schema = request.response_format.get("json_schema", {}).get("schema", request.response_format)
            system_parts.append(
                "Respond with a single JSON object and nothing else. It must match this JSON schema:\n"
                + json.dumps(schema, ensure_ascii=False)
            )

        params: Dict[str, Any] = {
            "model": self.model,
            "max_tokens": request.max_tokens,
            "temperature": request.temperature,
            "messages": [m for m in request.messages if m["role"] != "system"],
        }
        if system_parts:
            params["system"] = "\n\n".join(system_parts)
        return params

    async def complete(self, request: CompletionRequest) -> ProviderCallResult:
        params = self._build_request_params(request)

        try:
            response = await self._client.messages.create(**params)
        except anthropic.APITimeoutError as e:
            raise ProviderError(self.name, f"Request timed out after {self.timeout}s",
                                api_error_code="timeout", cause=e)
        except anthropic.APIConnectionError as e:
            raise ProviderError(self.name, f"Connection failed: {e}",
                                api_error_code="network", cause=e)
        except anthropic.APIStatusError as e:
            raise ProviderError(self.name, str(e), status_code=e.status_code, cause=e)
        except anthropic.AnthropicError as e:
            raise ProviderError(self.name, str(e), cause=e)

        content = ""
        if response.content:
            content = "".join(getattr(block, "text", "") for block in response.content)

        usage = {}
        if getattr(response, "usage", None) is not None:
            input_tokens = getattr(response.usage, "input_tokens", 0) or 0
            output_tokens = getattr(response.usage, "output_tokens", 0) or 0
            usage = {
                "prompt_tokens": input_tokens,
                "completion_tokens": output_tokens,
                "total_tokens": input_tokens + output_tokens,
            }

        return ProviderCallResult(
            content=content,
            finish_reason=getattr(response, "stop_reason", None),
            model=getattr(response, "model", None) or self.model,
            usage=usage,
        )

    async def close(self) -> None:
        await self._client.close()
