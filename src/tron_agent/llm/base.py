"""
Base classes for LLM providers.
"""

import secrets
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Literal

from ..errors import ConfigurationError
from .prompts import WalletContext, build_system_prompt

# "none" keeps tools declared (so tool history stays valid) but forbids new calls.
ToolChoice = Literal["auto", "none"]


@dataclass
class ToolDefinition:
    """Definition of a tool that the LLM can use."""

    name: str
    description: str
    parameters: dict[str, Any]


@dataclass
class ToolCall:
    """A tool call made by the LLM."""

    id: str
    name: str
    arguments: dict[str, Any]


@dataclass
class LLMMessage:
    """A message in the conversation."""

    role: Literal["user", "assistant", "system", "tool"]
    content: str
    tool_calls: list[ToolCall] | None = None
    tool_call_id: str | None = None
    name: str | None = None


@dataclass
class LLMResponse:
    """Response from an LLM."""

    content: str
    tool_calls: list[ToolCall] = field(default_factory=list)
    input_tokens: int = 0
    output_tokens: int = 0
    model: str = ""
    stop_reason: str | None = None
    raw_response: Any = None


def synthesize_call_id(prefix: str, index: int, token: str | None = None) -> str:
    """Build a tool-call id for vendors that do not issue one.

    ``token`` is shared by all calls of one response so ids stay ordered
    within the response and distinct across responses.
    """
    return f"{prefix}_{token or secrets.token_hex(6)}_{index}"


class BaseLLM(ABC):
    """Base class for LLM providers.

    Subclasses translate the normalized conversation into one vendor wire
    format (``build_request``), execute it (``generate``) and map the vendor
    reply back (``parse_response``). Input messages are never mutated.
    """

    requires_key: bool = True

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str | None = None,
        max_tokens: int = 4096,
        temperature: float = 0.7,
        timeout: float = 120.0,
    ):
        self.api_key = api_key
        self.model = model
        self.base_url = base_url
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.timeout = timeout

    @abstractmethod
    def build_request(
        self,
        messages: list[LLMMessage],
        tools: list[ToolDefinition] | None = None,
        system_prompt: str | None = None,
        tool_choice: ToolChoice = "auto",
    ) -> dict[str, Any]:
        """Build the vendor request body."""
        pass

    @abstractmethod
    def parse_response(self, raw: Any) -> LLMResponse:
        """Validate a vendor reply and normalize it."""
        pass

    @abstractmethod
    async def generate(
        self,
        messages: list[LLMMessage],
        tools: list[ToolDefinition] | None = None,
        system_prompt: str | None = None,
        tool_choice: ToolChoice = "auto",
    ) -> LLMResponse:
        """Generate a response from the LLM."""
        pass

    async def call(
        self,
        messages: list[LLMMessage],
        tools: list[ToolDefinition] | None = None,
        wallet: WalletContext | None = None,
        tool_choice: ToolChoice = "auto",
    ) -> LLMResponse:
        """Generate with the TRON system instructions, folding in wallet context."""
        return await self.generate(
            messages=messages,
            tools=tools or None,
            system_prompt=build_system_prompt(wallet),
            tool_choice=tool_choice,
        )

    def check_credentials(self) -> None:
        """Raise ConfigurationError when a required API key is missing."""
        if self.requires_key and not self.api_key:
            raise ConfigurationError(f"{self.provider_name} API key not configured")

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Get the provider name."""
        pass
