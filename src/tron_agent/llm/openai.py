"""
OpenAI-compatible LLM provider (OpenAI, DeepSeek, OpenRouter and custom endpoints).
"""

import json
from typing import Any

import openai
import structlog
from openai.types.chat import ChatCompletion
from pydantic import ValidationError

from ..errors import ProviderHttpError, ProviderResponseError, ProviderTransportError
from .base import BaseLLM, LLMMessage, LLMResponse, ToolCall, ToolChoice, ToolDefinition

logger = structlog.get_logger()


class OpenAILLM(BaseLLM):
    """Function-calling chat-completions provider."""

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o",
        base_url: str | None = None,
        max_tokens: int = 4096,
        temperature: float = 0.7,
        timeout: float = 120.0,
        provider: str = "openai",
        requires_key: bool = True,
    ):
        super().__init__(api_key, model, base_url, max_tokens, temperature, timeout)
        self.provider = provider
        self.requires_key = requires_key
        self._client: openai.AsyncOpenAI | None = None

    @property
    def client(self) -> openai.AsyncOpenAI:
        if self._client is None:
            self._client = openai.AsyncOpenAI(
                # Keyless endpoints still need a non-empty value for the SDK.
                api_key=self.api_key or "not-needed",
                base_url=self.base_url,
                timeout=self.timeout,
            )
        return self._client

    @property
    def provider_name(self) -> str:
        return self.provider

    def _convert_messages(self, messages: list[LLMMessage]) -> list[dict[str, Any]]:
        """Convert LLMMessages to OpenAI format."""
        converted = []

        for msg in messages:
            if msg.role == "tool":
                converted.append({
                    "role": "tool",
                    "tool_call_id": msg.tool_call_id,
                    "content": msg.content,
                })
            elif msg.role == "assistant" and msg.tool_calls:
                tool_calls = [
                    {
                        "id": tc.id,
                        "type": "function",
                        "function": {
                            "name": tc.name,
                            "arguments": json.dumps(tc.arguments),
                        },
                    }
                    for tc in msg.tool_calls
                ]
                converted.append({
                    "role": "assistant",
                    "content": msg.content or None,
                    "tool_calls": tool_calls,
                })
            else:
                converted.append({
                    "role": msg.role,
                    "content": msg.content,
                })

        return converted

    def _convert_tools(self, tools: list[ToolDefinition]) -> list[dict[str, Any]]:
        """Convert ToolDefinitions to OpenAI format."""
        return [
            {
                "type": "function",
                "function": {
                    "name": tool.name,
                    "description": tool.description,
                    "parameters": tool.parameters,
                },
            }
            for tool in tools
        ]

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
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
            "messages": converted_messages,
        }

        if tools:
            request["tools"] = self._convert_tools(tools)
            request["tool_choice"] = tool_choice

        return request

    def parse_response(self, raw: ChatCompletion | dict[str, Any]) -> LLMResponse:
        if isinstance(raw, dict):
            try:
                raw = ChatCompletion.model_validate(raw)
            except ValidationError as e:
                raise ProviderResponseError(f"Unexpected {self.provider} response: {e}") from e

        if not raw.choices:
            raise ProviderResponseError(f"{self.provider} response has no choices")

        choice = raw.choices[0]
        message = choice.message
        tool_calls = []

        for tc in message.tool_calls or []:
            function = getattr(tc, "function", None)
            if function is None:
                continue
            tool_calls.append(ToolCall(
                id=tc.id,
                name=function.name,
                arguments=self._decode_arguments(function.name, function.arguments),
            ))

        return LLMResponse(
            content=message.content or "",
            tool_calls=tool_calls,
            input_tokens=raw.usage.prompt_tokens if raw.usage else 0,
            output_tokens=raw.usage.completion_tokens if raw.usage else 0,
            model=raw.model,
            stop_reason=choice.finish_reason,
            raw_response=raw,
        )

    def _decode_arguments(self, name: str, arguments: str | None) -> dict[str, Any]:
        if not arguments:
            return {}
        try:
            decoded = json.loads(arguments)
        except json.JSONDecodeError as e:
            raise ProviderResponseError(
                f"Invalid JSON arguments for tool '{name}': {arguments!r}"
            ) from e
        if not isinstance(decoded, dict):
            raise ProviderResponseError(f"Arguments for tool '{name}' are not an object")
        return decoded

    async def generate(
        self,
        messages: list[LLMMessage],
        tools: list[ToolDefinition] | None = None,
        system_prompt: str | None = None,
        tool_choice: ToolChoice = "auto",
    ) -> LLMResponse:
        """Generate a response from an OpenAI-compatible endpoint."""
        self.check_credentials()
        request = self.build_request(messages, tools, system_prompt, tool_choice)

        try:
            response = await self.client.chat.completions.create(**request)
        except openai.APIStatusError as e:
            logger.error("OpenAI API error", provider=self.provider, status=e.status_code)
            raise ProviderHttpError(self.provider, e.status_code, e.response.text) from e
        except openai.APIConnectionError as e:
            logger.error("OpenAI connection error", provider=self.provider, error=str(e))
            raise ProviderTransportError(f"{self.provider} request failed: {e}") from e

        return self.parse_response(response)
