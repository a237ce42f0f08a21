"""
Native Google Gemini LLM provider.

Uses the google-genai SDK. Gemini has no tool role and issues no call ids:
results go back as ``function`` role contents and ids are synthesized here.
"""

import json
import secrets
from typing import Any

import httpx
import structlog
from google import genai
from google.genai import errors as genai_errors
from google.genai import types
from pydantic import ValidationError

from ..errors import ProviderHttpError, ProviderResponseError, ProviderTransportError
from .base import BaseLLM, LLMMessage, LLMResponse, ToolCall, ToolChoice, ToolDefinition, synthesize_call_id

logger = structlog.get_logger()


class GoogleGeminiLLM(BaseLLM):
    """Native Google Gemini LLM provider."""

    def __init__(
        self,
        api_key: str,
        model: str = "gemini-2.0-flash",
        base_url: str | None = None,
        max_tokens: int = 4096,
        temperature: float = 0.7,
        timeout: float = 120.0,
    ):
        super().__init__(api_key, model, base_url, max_tokens, temperature, timeout)
        self._client: genai.Client | None = None

    @property
    def client(self) -> genai.Client:
        """Lazy-initialize the Gemini client."""
        if self._client is None:
            options: dict[str, Any] = {"timeout": int(self.timeout * 1000)}
            if self.base_url:
                options["base_url"] = self.base_url
            self._client = genai.Client(
                api_key=self.api_key,
                http_options=types.HttpOptions(**options),
            )
        return self._client

    @property
    def provider_name(self) -> str:
        return "gemini"

    def _convert_messages(self, messages: list[LLMMessage]) -> list[dict[str, Any]]:
        """Convert LLMMessages to Gemini contents.

        Gemini uses 'user' and 'model' roles; the results of one turn share a
        single 'function' entry, one function_response part per call, so the
        part counts of the call and result turns match.
        """
        converted = []

        for msg in messages:
            if msg.role == "system":
                continue  # System prompt handled separately

            previous = converted[-1] if converted else None

            if msg.role == "tool":
                part = {
                    "function_response": {
                        "name": msg.name or "unknown",
                        "response": {"result": msg.content},
                    }
                }
                # One function turn answers every call of the preceding model turn.
                if previous is not None and previous["role"] == "function":
                    previous["parts"].append(part)
                else:
                    converted.append({"role": "function", "parts": [part]})
            elif msg.role == "assistant":
                parts: list[dict[str, Any]] = []
                if msg.content:
                    parts.append({"text": msg.content})
                for tc in msg.tool_calls or []:
                    parts.append({
                        "function_call": {
                            "name": tc.name,
                            "args": tc.arguments,
                        }
                    })
                if not parts:
                    parts.append({"text": ""})
                if (
                    msg.tool_calls
                    and previous is not None
                    and previous["role"] == "model"
                    and not any("function_call" in p for p in previous["parts"])
                ):
                    previous["parts"].extend(parts)
                else:
                    converted.append({"role": "model", "parts": parts})
            else:
                converted.append({
                    "role": "user",
                    "parts": [{"text": msg.content}],
                })

        return converted

    def _convert_tools(self, tools: list[ToolDefinition]) -> list[dict[str, Any]]:
        """Convert ToolDefinitions to Gemini function declarations."""
        return [{
            "function_declarations": [
                {
                    "name": tool.name,
                    "description": tool.description,
                    "parameters_json_schema": tool.parameters,
                }
                for tool in tools
            ]
        }]

    def build_request(
        self,
        messages: list[LLMMessage],
        tools: list[ToolDefinition] | None = None,
        system_prompt: str | None = None,
        tool_choice: ToolChoice = "auto",
    ) -> dict[str, Any]:
        config: dict[str, Any] = {
            "max_output_tokens": self.max_tokens,
            "temperature": self.temperature,
        }

        if system_prompt:
            config["system_instruction"] = system_prompt

        if tools:
            config["tools"] = self._convert_tools(tools)
            if tool_choice == "none":
                config["tool_config"] = {"function_calling_config": {"mode": "NONE"}}

        return {
            "model": self.model,
            "contents": self._convert_messages(messages),
            "config": config,
        }

    def parse_response(self, raw: types.GenerateContentResponse | dict[str, Any]) -> LLMResponse:
        if isinstance(raw, dict):
            try:
                raw = types.GenerateContentResponse.model_validate(raw)
            except ValidationError as e:
                raise ProviderResponseError(f"Unexpected gemini response: {e}") from e

        if not raw.candidates:
            raise ProviderResponseError("gemini response has no candidates")

        candidate = raw.candidates[0]
        content = ""
        tool_calls = []
        token = secrets.token_hex(6)

        parts = candidate.content.parts if candidate.content and candidate.content.parts else []
        for part in parts:
            if part.function_call is not None:
                fc = part.function_call
                tool_calls.append(ToolCall(
                    id=fc.id or synthesize_call_id("gemini", len(tool_calls), token),
                    name=fc.name or "",
                    arguments=dict(fc.args) if fc.args else {},
                ))
            elif part.text and not part.thought:
                content += part.text

        usage = raw.usage_metadata
        return LLMResponse(
            content=content,
            tool_calls=tool_calls,
            input_tokens=(usage.prompt_token_count or 0) if usage else 0,
            output_tokens=(usage.candidates_token_count or 0) if usage else 0,
            model=raw.model_version or self.model,
            stop_reason=getattr(candidate.finish_reason, "name", None),
            raw_response=raw,
        )

    async def generate(
        self,
        messages: list[LLMMessage],
        tools: list[ToolDefinition] | None = None,
        system_prompt: str | None = None,
        tool_choice: ToolChoice = "auto",
    ) -> LLMResponse:
        """Generate a response from Gemini."""
        self.check_credentials()
        request = self.build_request(messages, tools, system_prompt, tool_choice)

        try:
            response = await self.client.aio.models.generate_content(**request)
        except genai_errors.APIError as e:
            logger.error("Gemini API error", status=e.code, error=e.message)
            body = json.dumps(e.details) if e.details else str(e.message)
            raise ProviderHttpError("gemini", e.code, body) from e
        except httpx.HTTPError as e:
            logger.error("Gemini connection error", error=str(e))
            raise ProviderTransportError(f"gemini request failed: {e}") from e

        return self.parse_response(response)
