"""
Tests for configuration module.
"""

import os
from unittest.mock import patch

import pytest

from tron_agent.cli import show_config
from tron_agent.config import ALL_PROVIDERS, LLMConfig, Settings


def test_settings_default_values():
    """Test that settings have sensible defaults."""
    with patch.dict(os.environ, {}, clear=True):
        settings = Settings(_env_file=None)

        assert settings.app_name == "TRON-Agent"
        assert settings.mcp_server_url == "http://localhost:3100"
        assert settings.llm_provider == "deepseek"
        assert settings.max_iterations == 10
        assert settings.mcp_request_timeout == 60.0


def test_settings_from_env():
    """Test loading settings from environment variables."""
    env = {
        "MCP_SERVER_URL": "http://tools.internal:3100/",
        "LLM_PROVIDER": "claude",
        "CLAUDE_API_KEY": "test_claude_key",
        "MAX_ITERATIONS": "4",
    }

    with patch.dict(os.environ, env, clear=True):
        settings = Settings(_env_file=None)

        assert settings.mcp_server_url == "http://tools.internal:3100"
        assert settings.llm_provider == "claude"
        assert settings.claude_api_key == "test_claude_key"
        assert settings.max_iterations == 4


def test_max_iterations_must_be_positive():
    """Test that a zero iteration cap is rejected."""
    with patch.dict(os.environ, {"MAX_ITERATIONS": "0"}, clear=True):
        with pytest.raises(ValueError):
            Settings(_env_file=None)


def test_get_llm_config_defaults_to_active_provider():
    """Test resolving the active provider."""
    with patch.dict(os.environ, {"DEEPSEEK_API_KEY": "sk-deep"}, clear=True):
        settings = Settings(_env_file=None)
        config = settings.get_llm_config()

        assert isinstance(config, LLMConfig)
        assert config.provider == "deepseek"
        assert config.api_format == "openai"
        assert config.api_key == "sk-deep"
        assert config.base_url == "https://api.deepseek.com"


def test_get_llm_config_wire_formats():
    """Test that each provider maps to its wire format."""
    with patch.dict(os.environ, {}, clear=True):
        settings = Settings(_env_file=None)
        formats = {p: settings.get_llm_config(p).api_format for p in ALL_PROVIDERS}

    assert formats == {
        "openai": "openai",
        "claude": "claude",
        "deepseek": "openai",
        "gemini": "gemini",
        "ollama": "ollama",
        "openrouter": "openai",
        "custom": "openai",
    }


def test_get_llm_config_keyless_providers():
    """Test that local and custom endpoints need no key."""
    with patch.dict(os.environ, {}, clear=True):
        settings = Settings(_env_file=None)

        assert settings.get_llm_config("ollama").requires_key is False
        assert settings.get_llm_config("custom").requires_key is False
        assert settings.get_llm_config("openai").requires_key is True


def test_get_llm_config_carries_generation_settings():
    """Test that generation settings flow into every provider config."""
    env = {"MAX_TOKENS": "1024", "TEMPERATURE": "0.2", "LLM_TIMEOUT": "30"}

    with patch.dict(os.environ, env, clear=True):
        config = Settings(_env_file=None).get_llm_config("gemini")

        assert config.max_tokens == 1024
        assert config.temperature == 0.2
        assert config.timeout == 30.0
        assert config.base_url is None


def test_get_llm_config_unknown_provider():
    """Test that unknown providers are rejected."""
    with patch.dict(os.environ, {}, clear=True):
        settings = Settings(_env_file=None)

        with pytest.raises(ValueError, match="Unknown LLM provider"):
            settings.get_llm_config("mystery")


def test_request_timeout_can_be_disabled():
    """Test that 'none' turns the MCP request timeout off."""
    with patch.dict(os.environ, {"MCP_REQUEST_TIMEOUT": "none"}, clear=True):
        settings = Settings(_env_file=None)
        assert settings.mcp_request_timeout is None

    with patch.dict(os.environ, {"MCP_REQUEST_TIMEOUT": "5"}, clear=True):
        settings = Settings(_env_file=None)
        assert settings.mcp_request_timeout == 5.0


def test_show_config_uses_app_name(capsys):
    """Test that the configuration banner carries the application name."""
    with patch.dict(os.environ, {"APP_NAME": "Tron Desk"}, clear=True):
        settings = Settings(_env_file=None)

    show_config(settings, check=False)

    out = capsys.readouterr().out
    assert "=== Tron Desk Configuration ===" in out
    assert "Request Timeout: 60.0" in out
