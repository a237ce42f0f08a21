"""
Anthropic Claude LLM provider.
"""

from typing import Any

import anthropic
import structlog
from anthropic.types import Message
from pydantic import ValidationError

from ..errors import ProviderHttpError, ProviderResponseError, ProviderTransportError
from .base import BaseLLM, LLMMessage, LLMResponse, ToolCall, ToolChoice, ToolDefinition

logger = structlog.get_logger()


class AnthropicLLM(BaseLLM):
    """Anthropic Claude LLM provider."""

    def __init__(
        self,
        api_key: str,
        model: str = "claude-sonnet-4-20250514",
        base_url: str | None = None,
        max_tokens: int = 4096,
        temperature: float = 0.7,
        timeout: float = 120.0,
    ):
        super().__init__(api_key, model, base_url, max_tokens, temperature, timeout)
        self._client: anthropic.AsyncAnthropic | None = None

    @property
    def client(self) -> anthropic.AsyncAnthropic:
        if self._client is None:
            self._client = anthropic.AsyncAnthropic(
                api_key=self.api_key,
                base_url=self.base_url,
                timeout=self.timeout,
            )
        return self._client

    @property
    def provider_name(self) -> str:
        return "claude"

    def _convert_messages(self, messages: list[LLMMessage]) -> list[dict[str, Any]]:
        """Convert LLMMessages to Anthropic format.

        Claude has no tool role: results go back as user messages holding
        tool_result blocks. Results of one turn share a single user message.
        """
        converted: list[dict[str, Any]] = []

        for msg in messages:
            if msg.role == "system":
                continue

            if msg.role == "tool":
                block = {
                    "type": "tool_result",
                    "tool_use_id": msg.tool_call_id,
                    "content": msg.content,
                }
                previous = converted[-1] if converted else None
                if (
                    previous is not None
                    and previous["role"] == "user"
                    and isinstance(previous["content"], list)
                    and all(b.get("type") == "tool_result" for b in previous["content"])
                ):
                    previous["content"].append(block)
                else:
                    converted.append({"role": "user", "content": [block]})
            elif msg.role == "assistant" and msg.tool_calls:
                content: list[dict[str, Any]] = []
                if msg.content:
                    content.append({"type": "text", "text": msg.content})
                for tc in msg.tool_calls:
                    content.append({
                        "type": "tool_use",
                        "id": tc.id,
                        "name": tc.name,
                        "input": tc.arguments,
                    })
                previous = converted[-1] if converted else None
                if previous is not None and previous["role"] == "assistant" and isinstance(previous["content"], str):
                    # Partial text already sent as its own message joins the tool_use turn.
                    prefix = [{"type": "text", "text": previous["content"]}] if previous["content"] else []
                    previous["content"] = prefix + content
                else:
                    converted.append({"role": "assistant", "content": content})
            else:
                converted.append({
                    "role": msg.role,
                    "content": msg.content,
                })

        return converted

    def _convert_tools(self, tools: list[ToolDefinition]) -> list[dict[str, Any]]:
        """Convert ToolDefinitions to Anthropic format."""
        return [
            {
                "name": tool.name,
                "description": tool.description,
                "input_schema": tool.parameters,
            }
            for tool in tools
        ]

    def _extract_system_prompt(self, messages: list[LLMMessage]) -> str | None:
        """Extract system prompt from messages."""
        for msg in messages:
            if msg.role == "system":
                return msg.content
        return None

    def build_request(
        self,
        messages: list[LLMMessage],
        tools: list[ToolDefinition] | None = None,
        system_prompt: str | None = None,
        tool_choice: ToolChoice = "auto",
    ) -> dict[str, Any]:
        system = system_prompt or self._extract_system_prompt(messages)

        request: dict[str, Any] = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
            "messages": self._convert_messages(messages),
        }

        if system:
            request["system"] = system

        if tools:
            request["tools"] = self._convert_tools(tools)
            if tool_choice != "auto":
                request["tool_choice"] = {"type": tool_choice}

        return request

    def parse_response(self, raw: Message | dict[str, Any]) -> LLMResponse:
        if isinstance(raw, dict):
            try:
                raw = Message.model_validate(raw)
            except ValidationError as e:
                raise ProviderResponseError(f"Unexpected claude response: {e}") from e

        content = ""
        tool_calls = []

        for block in raw.content:
            if block.type == "text":
                content += block.text
            elif block.type == "tool_use":
                tool_calls.append(ToolCall(
                    id=block.id,
                    name=block.name,
                    arguments=dict(block.input) if isinstance(block.input, dict) else {},
                ))

        return LLMResponse(
            content=content,
            tool_calls=tool_calls,
            input_tokens=raw.usage.input_tokens,
            output_tokens=raw.usage.output_tokens,
            model=raw.model,
            stop_reason=raw.stop_reason,
            raw_response=raw,
        )

    async def generate(
        self,
        messages: list[LLMMessage],
        tools: list[ToolDefinition] | None = None,
        system_prompt: str | None = None,
        tool_choice: ToolChoice = "auto",
    ) -> LLMResponse:
        """Generate a response from Claude."""
        self.check_credentials()
        request = self.build_request(messages, tools, system_prompt, tool_choice)

        try:
            response = await self.client.messages.create(**request)
        except anthropic.APIStatusError as e:
            logger.error("Anthropic API error", status=e.status_code)
            raise ProviderHttpError("claude", e.status_code, e.response.text) from e
        except anthropic.APIConnectionError as e:
            logger.error("Anthropic connection error", error=str(e))
            raise ProviderTransportError(f"claude request failed: {e}") from e

        return self.parse_response(response)
