"""
Configuration management for TRON Agent

Uses pydantic-settings for environment variable parsing and validation.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

LLMProvider = Literal["openai", "claude", "deepseek", "gemini", "ollama", "openrouter", "custom"]
ApiFormat = Literal["openai", "ollama", "claude", "gemini"]

ALL_PROVIDERS: list[str] = [
    "openai",
    "claude",
    "deepseek",
    "gemini",
    "ollama",
    "openrouter",
    "custom",
]


class LLMConfig(BaseSettings):
    """Resolved configuration for a single LLM provider."""

    model_config = SettingsConfigDict(extra="ignore")

    provider: LLMProvider = "deepseek"
    label: str = "DeepSeek"
    api_format: ApiFormat = "openai"
    model: str = "deepseek-chat"
    api_key: str = ""
    base_url: str | None = None
    requires_key: bool = True
    max_tokens: int = 4096
    temperature: float = 0.7
    timeout: float = 120.0


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_parse_none_str="none",
        extra="ignore",
    )

    # Application
    app_name: str = "TRON-Agent"
    log_level: str = "INFO"

    # MCP tool server
    mcp_server_url: str = Field(
        default="http://localhost:3100",
        description="Base URL of the MCP tool server (SSE transport)",
    )
    mcp_request_timeout: float | None = Field(
        default=60.0,
        description="Seconds to wait for a JSON-RPC response; 'none' waits forever",
    )

    # Active provider
    llm_provider: LLMProvider = "deepseek"

    # OpenAI
    openai_api_key: str = Field(default="", description="OpenAI API key")
    openai_base_url: str = "https://api.openai.com/v1"
    openai_model: str = "gpt-4o"

    # Anthropic Claude
    claude_api_key: str = Field(default="", description="Anthropic API key for Claude")
    claude_base_url: str = "https://api.anthropic.com"
    claude_model: str = "claude-sonnet-4-20250514"

    # DeepSeek
    deepseek_api_key: str = Field(default="", description="DeepSeek API key")
    deepseek_base_url: str = "https://api.deepseek.com"
    deepseek_model: str = "deepseek-chat"

    # Google Gemini
    gemini_api_key: str = Field(default="", description="Google AI API key for Gemini")
    gemini_base_url: str = ""
    gemini_model: str = "gemini-2.0-flash"

    # Ollama (local, native chat protocol)
    ollama_base_url: str = "http://localhost:11434"
    ollama_model: str = "qwen2.5:14b"

    # OpenRouter
    openrouter_api_key: str = Field(default="", description="OpenRouter API key")
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    openrouter_model: str = "anthropic/claude-sonnet-4"

    # Custom OpenAI-compatible endpoint
    custom_api_key: str = Field(default="", description="API key for a custom endpoint")
    custom_base_url: str = "http://localhost:8000/v1"
    custom_model: str = "default"

    # Generation
    max_tokens: int = 4096
    temperature: float = 0.7
    llm_timeout: float = Field(default=120.0, description="Seconds before an LLM call is abandoned")

    # Agent
    max_iterations: int = Field(default=10, ge=1, description="Reasoning loop iteration cap")

    @field_validator("mcp_server_url", mode="before")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/") if v else v

    def get_llm_config(self, provider: str | None = None) -> LLMConfig:
        """Get LLM configuration for a provider."""
        provider = provider or self.llm_provider

        if provider not in ALL_PROVIDERS:
            raise ValueError(f"Unknown LLM provider: {provider}")

        table = {
            "openai": ("OpenAI", "openai", self.openai_api_key, self.openai_base_url, self.openai_model, True),
            "claude": ("Anthropic Claude", "claude", self.claude_api_key, self.claude_base_url, self.claude_model, True),
            "deepseek": ("DeepSeek", "openai", self.deepseek_api_key, self.deepseek_base_url, self.deepseek_model, True),
            "gemini": ("Google Gemini", "gemini", self.gemini_api_key, self.gemini_base_url or None, self.gemini_model, True),
            "ollama": ("Ollama (Local)", "ollama", "", self.ollama_base_url, self.ollama_model, False),
            "openrouter": ("OpenRouter", "openai", self.openrouter_api_key, self.openrouter_base_url, self.openrouter_model, True),
            "custom": ("Custom (OpenAI-Compatible)", "openai", self.custom_api_key, self.custom_base_url, self.custom_model, False),
        }
        label, api_format, api_key, base_url, model, requires_key = table[provider]

        return LLMConfig(
            provider=provider,  # type: ignore
            label=label,
            api_format=api_format,  # type: ignore
            model=model,
            api_key=api_key,
            base_url=base_url,
            requires_key=requires_key,
            max_tokens=self.max_tokens,
            temperature=self.temperature,
            timeout=self.llm_timeout,
        )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
