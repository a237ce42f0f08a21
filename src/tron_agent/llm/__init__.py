"""
LLM module for multi-provider AI model support.

Wire formats:
- Function calling (OpenAI, DeepSeek, OpenRouter, custom endpoints)
- Ollama native chat (local inference)
- Anthropic Claude content blocks
- Google Gemini candidates/parts
"""

from .base import BaseLLM, LLMMessage, LLMResponse, ToolCall, ToolChoice, ToolDefinition
from .anthropic import AnthropicLLM
from .google import GoogleGeminiLLM
from .ollama import OllamaLLM
from .openai import OpenAILLM
from .prompts import SYSTEM_PROMPT, WalletContext, build_system_prompt
from .factory import create_llm

__all__ = [
    "BaseLLM",
    "LLMMessage",
    "LLMResponse",
    "ToolCall",
    "ToolChoice",
    "ToolDefinition",
    "AnthropicLLM",
    "GoogleGeminiLLM",
    "OllamaLLM",
    "OpenAILLM",
    "SYSTEM_PROMPT",
    "WalletContext",
    "build_system_prompt",
    "create_llm",
]
