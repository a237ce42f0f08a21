"""
Ollama LLM provider using the native /api/chat protocol.

Same function-calling family as OpenAI, but the endpoint path differs,
arguments travel as objects instead of JSON strings, and the reply is a
single ``message`` envelope whose tool calls carry no ids.
"""

import json
import secrets
from typing import Any

import httpx
import structlog
from pydantic import BaseModel, Field, ValidationError, field_validator

from ..errors import ProviderHttpError, ProviderResponseError, ProviderTransportError
from .base import LLMMessage, LLMResponse, ToolCall, ToolChoice, ToolDefinition, synthesize_call_id
from .openai import OpenAILLM

logger = structlog.get_logger()


class OllamaFunction(BaseModel):
    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)

    @field_validator("arguments", mode="before")
    @classmethod
    def decode_string_arguments(cls, v: Any) -> Any:
        if v is None or v == "":
            return {}
        if isinstance(v, str):
            return json.loads(v)
        return v


class OllamaToolCall(BaseModel):
    id: str | None = None
    function: OllamaFunction


class OllamaMessage(BaseModel):
    role: str = "assistant"
    content: str | None = ""
    tool_calls: list[OllamaToolCall] | None = None


class OllamaChatResponse(BaseModel):
    """Non-streaming /api/chat reply."""

    model: str = ""
    message: OllamaMessage
    done_reason: str | None = None
    prompt_eval_count: int = 0
    eval_count: int = 0


class OllamaLLM(OpenAILLM):
    """Local-inference provider speaking Ollama's native chat protocol."""

    def __init__(
        self,
        api_key: str = "",
        model: str = "qwen2.5:14b",
        base_url: str | None = None,
        max_tokens: int = 4096,
        temperature: float = 0.7,
        timeout: float = 120.0,
        http_client: httpx.AsyncClient | None = None,
    ):
        super().__init__(
            api_key,
            model,
            base_url or "http://localhost:11434",
            max_tokens,
            temperature,
            timeout,
            provider="ollama",
            requires_key=False,
        )
        self._http_client = http_client

    @property
    def chat_url(self) -> str:
        base = (self.base_url or "").rstrip("/")
        # Accept an OpenAI-style ".../v1" base as well as the server root.
        if base.endswith("/v1"):
            base = base[: -len("/v1")]
        return f"{base}/api/chat"

    def _convert_messages(self, messages: list[LLMMessage]) -> list[dict[str, Any]]:
        """Convert LLMMessages to Ollama native format."""
        converted = []

        for msg in messages:
            if msg.role == "tool":
                converted.append({
                    "role": "tool",
                    "content": msg.content,
                    "tool_name": msg.name or "",
                })
            elif msg.role == "assistant" and msg.tool_calls:
                converted.append({
                    "role": "assistant",
                    "content": msg.content or "",
                    "tool_calls": [
                        {"function": {"name": tc.name, "arguments": tc.arguments}}
                        for tc in msg.tool_calls
                    ],
                })
            else:
                converted.append({"role": msg.role, "content": msg.content})

        return converted

    def build_request(
        self,
        messages: list[LLMMessage],
        tools: list[ToolDefinition] | None = None,
        system_prompt: str | None = None,
        tool_choice: ToolChoice = "auto",
    ) -> dict[str, Any]:
        converted_messages = self._convert_messages(messages)

        if system_prompt:
            converted_messages.insert(0, {"role": "system", "content": system_prompt})

        request: dict[str, Any] = {
            "model": self.model,
            "messages": converted_messages,
            "stream": False,
            "options": {
                "temperature": self.temperature,
                "num_predict": self.max_tokens,
            },
        }

        # No tool_choice here; withholding the tools is how calls are forbidden.
        if tools and tool_choice != "none":
            request["tools"] = self._convert_tools(tools)

        return request

    def parse_response(self, raw: OllamaChatResponse | dict[str, Any]) -> LLMResponse:
        if isinstance(raw, dict):
            try:
                raw = OllamaChatResponse.model_validate(raw)
            except ValidationError as e:
                raise ProviderResponseError(f"Unexpected ollama response: {e}") from e

        token = secrets.token_hex(6)
        tool_calls = [
            ToolCall(
                id=tc.id or synthesize_call_id("call", index, token),
                name=tc.function.name,
                arguments=tc.function.arguments,
            )
            for index, tc in enumerate(raw.message.tool_calls or [])
        ]

        return LLMResponse(
            content=raw.message.content or "",
            tool_calls=tool_calls,
            input_tokens=raw.prompt_eval_count,
            output_tokens=raw.eval_count,
            model=raw.model or self.model,
            stop_reason=raw.done_reason,
            raw_response=raw,
        )

    async def generate(
        self,
        messages: list[LLMMessage],
        tools: list[ToolDefinition] | None = None,
        system_prompt: str | None = None,
        tool_choice: ToolChoice = "auto",
    ) -> LLMResponse:
        """Generate a response from a local Ollama server."""
        request = self.build_request(messages, tools, system_prompt, tool_choice)

        try:
            if self._http_client is not None:
                response = await self._http_client.post(self.chat_url, json=request)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(self.chat_url, json=request)
        except httpx.HTTPError as e:
            logger.error("Ollama connection error", url=self.chat_url, error=str(e))
            raise ProviderTransportError(f"ollama request failed: {e}") from e

        if response.is_error:
            logger.error("Ollama API error", status=response.status_code)
            raise ProviderHttpError("ollama", response.status_code, response.text)

        try:
            data = response.json()
        except ValueError as e:
            raise ProviderResponseError(f"ollama returned non-JSON body: {response.text[:200]}") from e

        if not isinstance(data, dict):
            raise ProviderResponseError("ollama response is not a JSON object")

        return self.parse_response(data)
