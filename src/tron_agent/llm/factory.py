"""
LLM factory for creating provider instances.

Supports: OpenAI-compatible (OpenAI, DeepSeek, OpenRouter, custom),
Ollama native, Anthropic Claude, Google Gemini.
"""

from ..config import LLMConfig, Settings
from .anthropic import AnthropicLLM
from .base import BaseLLM
from .google import GoogleGeminiLLM
from .ollama import OllamaLLM
from .openai import OpenAILLM


def create_llm(config: LLMConfig | None = None, settings: Settings | None = None) -> BaseLLM:
    """Create an LLM instance based on configuration.

    Routing is by wire format, not vendor:
    - openai -> OpenAILLM (chat completions, any compatible base URL)
    - ollama -> OllamaLLM (native /api/chat)
    - claude -> AnthropicLLM (messages + content blocks)
    - gemini -> GoogleGeminiLLM (generateContent + candidates)
    """
    if config is None:
        if settings is None:
            from ..config import get_settings
            settings = get_settings()
        config = settings.get_llm_config()

    api_format = config.api_format

    if api_format == "openai":
        return OpenAILLM(
            api_key=config.api_key,
            model=config.model,
            base_url=config.base_url,
            max_tokens=config.max_tokens,
            temperature=config.temperature,
            timeout=config.timeout,
            provider=config.provider,
            requires_key=config.requires_key,
        )
    elif api_format == "ollama":
        return OllamaLLM(
            model=config.model,
            base_url=config.base_url,
            max_tokens=config.max_tokens,
            temperature=config.temperature,
            timeout=config.timeout,
        )
    elif api_format == "claude":
        return AnthropicLLM(
            api_key=config.api_key,
            model=config.model,
            base_url=config.base_url,
            max_tokens=config.max_tokens,
            temperature=config.temperature,
            timeout=config.timeout,
        )
    elif api_format == "gemini":
        return GoogleGeminiLLM(
            api_key=config.api_key,
            model=config.model,
            base_url=config.base_url,
            max_tokens=config.max_tokens,
            temperature=config.temperature,
            timeout=config.timeout,
        )
    else:
        raise ValueError(f"Unknown LLM API format: {api_format}")
