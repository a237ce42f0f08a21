"""
Tests for the LLM provider adapters.
"""

import copy
import json
from unittest.mock import AsyncMock, MagicMock

import anthropic
import httpx
import openai
import pytest
import respx
from anthropic.types import Message
from google.genai import errors as genai_errors
from openai.types.chat import ChatCompletion

from tron_agent.config import LLMConfig
from tron_agent.errors import (
    ConfigurationError,
    ProviderHttpError,
    ProviderResponseError,
    ProviderTransportError,
)
from tron_agent.llm import (
    SYSTEM_PROMPT,
    AnthropicLLM,
    GoogleGeminiLLM,
    LLMMessage,
    OllamaLLM,
    OpenAILLM,
    ToolCall,
    ToolDefinition,
    WalletContext,
    build_system_prompt,
    create_llm,
)

ADDRESS = "TDqSquXBgUCLYvYC4XZgrprLK589dkhSCf"

ACCOUNT_TOOL = ToolDefinition(
    name="get_account_info",
    description="Get account info",
    parameters={"type": "object", "properties": {"address": {"type": "string"}}, "required": ["address"]},
)


def conversation() -> list[LLMMessage]:
    """A turn with partial text, two tool calls and their results."""
    calls = [
        ToolCall(id="call_a", name="get_account_info", arguments={"address": ADDRESS}),
        ToolCall(id="call_b", name="get_network_parameters", arguments={}),
    ]
    return [
        LLMMessage(role="user", content="Balance and energy price?"),
        LLMMessage(role="assistant", content="Let me check."),
        LLMMessage(role="assistant", content="", tool_calls=calls),
        LLMMessage(role="tool", content='{"balance": 10}', tool_call_id="call_a", name="get_account_info"),
        LLMMessage(role="tool", content='{"energy": 420}', tool_call_id="call_b", name="get_network_parameters"),
    ]


def openai_completion(**message) -> dict:
    return {
        "id": "chatcmpl-1",
        "object": "chat.completion",
        "created": 1700000000,
        "model": "gpt-4o",
        "choices": [{
            "index": 0,
            "finish_reason": "tool_calls" if message.get("tool_calls") else "stop",
            "message": {"role": "assistant", "content": None, **message},
        }],
        "usage": {"prompt_tokens": 12, "completion_tokens": 5, "total_tokens": 17},
    }


def anthropic_message(*content) -> dict:
    return {
        "id": "msg_1",
        "type": "message",
        "role": "assistant",
        "model": "claude-sonnet-4-20250514",
        "content": list(content),
        "stop_reason": "tool_use",
        "stop_sequence": None,
        "usage": {"input_tokens": 20, "output_tokens": 8},
    }


def gemini_response(*parts) -> dict:
    return {
        "candidates": [{
            "content": {"role": "model", "parts": list(parts)},
            "finish_reason": "STOP",
        }],
        "usage_metadata": {"prompt_token_count": 30, "candidates_token_count": 6},
        "model_version": "gemini-2.0-flash",
    }


def status_error(cls, status: int, body: str, url: str):
    request = httpx.Request("POST", url)
    return cls(body, response=httpx.Response(status, text=body, request=request), body=None)


# OpenAI-compatible


def test_openai_build_request():
    """Test function-calling request layout."""
    llm = OpenAILLM(api_key="sk-test", model="gpt-4o", max_tokens=512, temperature=0.1)

    request = llm.build_request(conversation(), [ACCOUNT_TOOL], system_prompt="Be brief.")

    assert request["model"] == "gpt-4o"
    assert request["max_tokens"] == 512
    assert request["temperature"] == 0.1
    assert request["tool_choice"] == "auto"
    assert request["tools"][0]["function"]["name"] == "get_account_info"
    assert request["messages"][0] == {"role": "system", "content": "Be brief."}

    tool_turn = request["messages"][3]
    assert [tc["id"] for tc in tool_turn["tool_calls"]] == ["call_a", "call_b"]
    assert json.loads(tool_turn["tool_calls"][0]["function"]["arguments"]) == {"address": ADDRESS}
    assert request["messages"][4] == {"role": "tool", "tool_call_id": "call_a", "content": '{"balance": 10}'}


def test_openai_build_request_without_tools():
    """Test that no tool keys are sent without tools."""
    request = OpenAILLM(api_key="sk-test").build_request([LLMMessage(role="user", content="Hi")])

    assert "tools" not in request
    assert "tool_choice" not in request


def test_openai_parse_tool_calls():
    """Test decoding function calls from a completion."""
    raw = openai_completion(tool_calls=[{
        "id": "call_xyz",
        "type": "function",
        "function": {"name": "get_account_info", "arguments": json.dumps({"address": ADDRESS})},
    }])

    response = OpenAILLM(api_key="sk-test").parse_response(raw)

    assert response.content == ""
    assert response.tool_calls == [ToolCall(id="call_xyz", name="get_account_info", arguments={"address": ADDRESS})]
    assert response.input_tokens == 12
    assert response.output_tokens == 5
    assert response.stop_reason == "tool_calls"


def test_openai_parse_invalid_arguments():
    """Test that undecodable arguments are a response error."""
    raw = openai_completion(tool_calls=[{
        "id": "call_xyz",
        "type": "function",
        "function": {"name": "get_account_info", "arguments": "{not json"},
    }])

    with pytest.raises(ProviderResponseError, match="Invalid JSON arguments"):
        OpenAILLM(api_key="sk-test").parse_response(raw)


def test_openai_parse_malformed_payload():
    """Test that a payload of the wrong shape is a response error."""
    with pytest.raises(ProviderResponseError):
        OpenAILLM(api_key="sk-test").parse_response({"choices": "nope"})


@pytest.mark.asyncio
async def test_openai_missing_key():
    """Test that a keyed provider refuses to run without a key."""
    llm = OpenAILLM(api_key="", provider="deepseek")

    with pytest.raises(ConfigurationError, match="deepseek"):
        await llm.generate([LLMMessage(role="user", content="Hi")])


@pytest.mark.asyncio
async def test_openai_keyless_custom_endpoint():
    """Test that keyless endpoints run without a key."""
    llm = OpenAILLM(api_key="", base_url="http://localhost:8000/v1", provider="custom", requires_key=False)
    llm._client = MagicMock()
    llm._client.chat.completions.create = AsyncMock(
        return_value=ChatCompletion.model_validate(openai_completion(content="Hello"))
    )

    response = await llm.generate([LLMMessage(role="user", content="Hi")])

    assert response.content == "Hello"


@pytest.mark.asyncio
async def test_openai_http_error_mapping():
    """Test that vendor status errors carry provider, status and body."""
    llm = OpenAILLM(api_key="sk-test", provider="openrouter")
    llm._client = MagicMock()
    llm._client.chat.completions.create = AsyncMock(side_effect=status_error(
        openai.AuthenticationError, 401, "invalid api key", "https://openrouter.ai/api/v1/chat/completions",
    ))

    with pytest.raises(ProviderHttpError) as exc_info:
        await llm.generate([LLMMessage(role="user", content="Hi")])

    assert exc_info.value.provider == "openrouter"
    assert exc_info.value.status == 401
    assert str(exc_info.value) == "openrouter API error (401): invalid api key"


@pytest.mark.asyncio
async def test_openai_connection_error_mapping():
    """Test that unreachable vendors raise a transport error."""
    llm = OpenAILLM(api_key="sk-test")
    llm._client = MagicMock()
    llm._client.chat.completions.create = AsyncMock(side_effect=openai.APIConnectionError(
        request=httpx.Request("POST", "https://api.openai.com/v1/chat/completions"),
    ))

    with pytest.raises(ProviderTransportError):
        await llm.generate([LLMMessage(role="user", content="Hi")])


@pytest.mark.asyncio
async def test_call_injects_wallet_into_system_prompt():
    """Test that call() sends the TRON instructions with the wallet section."""
    llm = OpenAILLM(api_key="sk-test")
    llm._client = MagicMock()
    llm._client.chat.completions.create = AsyncMock(
        return_value=ChatCompletion.model_validate(openai_completion(content="ok"))
    )

    await llm.call([LLMMessage(role="user", content="My balance?")], wallet=WalletContext(ADDRESS, "nile"))

    system = llm._client.chat.completions.create.call_args.kwargs["messages"][0]
    assert system["role"] == "system"
    assert system["content"].startswith(SYSTEM_PROMPT)
    assert ADDRESS in system["content"]
    assert "nile" in system["content"]


def test_build_system_prompt_without_wallet():
    """Test the plain system prompt."""
    assert build_system_prompt() == SYSTEM_PROMPT
    assert build_system_prompt(WalletContext(address="")) == SYSTEM_PROMPT


# Ollama native


def test_ollama_build_request():
    """Test native chat request layout."""
    llm = OllamaLLM(model="qwen2.5:14b", max_tokens=256, temperature=0.3)

    request = llm.build_request(conversation(), [ACCOUNT_TOOL], system_prompt="Be brief.")

    assert request["stream"] is False
    assert request["options"] == {"temperature": 0.3, "num_predict": 256}
    assert request["messages"][0] == {"role": "system", "content": "Be brief."}
    assert request["messages"][3]["tool_calls"][0] == {
        "function": {"name": "get_account_info", "arguments": {"address": ADDRESS}},
    }
    assert request["messages"][4] == {
        "role": "tool",
        "content": '{"balance": 10}',
        "tool_name": "get_account_info",
    }


def test_ollama_chat_url():
    """Test endpoint resolution from server root or OpenAI-style base."""
    assert OllamaLLM().chat_url == "http://localhost:11434/api/chat"
    assert OllamaLLM(base_url="http://gpu-box:11434/v1/").chat_url == "http://gpu-box:11434/api/chat"


def test_ollama_parse_synthesizes_ids():
    """Test that calls without ids get distinct, ordered ids."""
    raw = {
        "model": "qwen2.5:14b",
        "message": {
            "role": "assistant",
            "content": "",
            "tool_calls": [
                {"function": {"name": "get_account_info", "arguments": {"address": ADDRESS}}},
                {"function": {"name": "get_network_parameters", "arguments": "{}"}},
            ],
        },
        "done_reason": "stop",
        "prompt_eval_count": 40,
        "eval_count": 9,
    }
    llm = OllamaLLM()

    first = llm.parse_response(raw)
    second = llm.parse_response(raw)

    ids = [tc.id for tc in first.tool_calls]
    assert ids[0].startswith("call_") and ids[0].endswith("_0")
    assert ids[1].endswith("_1")
    assert ids[0].rsplit("_", 1)[0] == ids[1].rsplit("_", 1)[0]
    assert not set(ids) & {tc.id for tc in second.tool_calls}
    assert first.tool_calls[1].arguments == {}
    assert first.input_tokens == 40


@pytest.mark.asyncio
async def test_ollama_generate():
    """Test a round trip against a mocked Ollama server."""
    with respx.mock:
        route = respx.post("http://localhost:11434/api/chat").mock(return_value=httpx.Response(200, json={
            "model": "qwen2.5:14b",
            "message": {"role": "assistant", "content": "Hello from Ollama"},
            "done_reason": "stop",
        }))

        response = await OllamaLLM().generate([LLMMessage(role="user", content="Hi")])

    assert response.content == "Hello from Ollama"
    assert json.loads(route.calls.last.request.content)["stream"] is False


@pytest.mark.asyncio
async def test_ollama_http_error():
    """Test that non-success statuses are mapped."""
    with respx.mock:
        respx.post("http://localhost:11434/api/chat").mock(
            return_value=httpx.Response(404, text='{"error":"model not found"}')
        )

        with pytest.raises(ProviderHttpError) as exc_info:
            await OllamaLLM().generate([LLMMessage(role="user", content="Hi")])

    assert exc_info.value.status == 404
    assert "model not found" in exc_info.value.body


@pytest.mark.asyncio
async def test_ollama_unreachable():
    """Test that a refused connection is a transport error."""
    with respx.mock:
        respx.post("http://localhost:11434/api/chat").mock(side_effect=httpx.ConnectError("refused"))

        with pytest.raises(ProviderTransportError):
            await OllamaLLM().generate([LLMMessage(role="user", content="Hi")])


# Anthropic


def test_anthropic_build_request():
    """Test content-block request layout."""
    llm = AnthropicLLM(api_key="sk-ant")

    request = llm.build_request(conversation(), [ACCOUNT_TOOL], system_prompt="Be brief.")

    assert request["system"] == "Be brief."
    assert request["tools"][0]["input_schema"] == ACCOUNT_TOOL.parameters
    assert [m["role"] for m in request["messages"]] == ["user", "assistant", "user"]

    assistant = request["messages"][1]["content"]
    assert assistant[0] == {"type": "text", "text": "Let me check."}
    assert [b["id"] for b in assistant[1:]] == ["call_a", "call_b"]

    results = request["messages"][2]["content"]
    assert [b["tool_use_id"] for b in results] == ["call_a", "call_b"]
    assert all(b["type"] == "tool_result" for b in results)


def test_anthropic_system_message_is_side_channel():
    """Test that system messages never appear in the message list."""
    messages = [LLMMessage(role="system", content="Sys"), LLMMessage(role="user", content="Hi")]

    request = AnthropicLLM(api_key="sk-ant").build_request(messages)

    assert request["system"] == "Sys"
    assert request["messages"] == [{"role": "user", "content": "Hi"}]
    assert "tools" not in request


def test_anthropic_parse_response():
    """Test decoding text and tool_use blocks."""
    raw = anthropic_message(
        {"type": "text", "text": "Checking the balance."},
        {"type": "tool_use", "id": "toolu_1", "name": "get_account_info", "input": {"address": ADDRESS}},
    )

    response = AnthropicLLM(api_key="sk-ant").parse_response(raw)

    assert response.content == "Checking the balance."
    assert response.tool_calls == [ToolCall(id="toolu_1", name="get_account_info", arguments={"address": ADDRESS})]
    assert response.stop_reason == "tool_use"
    assert response.output_tokens == 8


def test_anthropic_parse_malformed_payload():
    """Test that a payload of the wrong shape is a response error."""
    with pytest.raises(ProviderResponseError):
        AnthropicLLM(api_key="sk-ant").parse_response({"content": "nope"})


@pytest.mark.asyncio
async def test_anthropic_missing_key():
    """Test that Claude refuses to run without a key."""
    with pytest.raises(ConfigurationError, match="claude"):
        await AnthropicLLM(api_key="").generate([LLMMessage(role="user", content="Hi")])


@pytest.mark.asyncio
async def test_anthropic_generate():
    """Test a generate call through a mocked SDK client."""
    llm = AnthropicLLM(api_key="sk-ant")
    llm._client = MagicMock()
    llm._client.messages.create = AsyncMock(
        return_value=Message.model_validate(anthropic_message({"type": "text", "text": "Hi!"}))
    )

    response = await llm.generate([LLMMessage(role="user", content="Hi")], system_prompt="Sys")

    assert response.content == "Hi!"
    assert llm._client.messages.create.call_args.kwargs["system"] == "Sys"


@pytest.mark.asyncio
async def test_anthropic_http_error_mapping():
    """Test that vendor status errors are mapped."""
    llm = AnthropicLLM(api_key="sk-ant")
    llm._client = MagicMock()
    llm._client.messages.create = AsyncMock(side_effect=status_error(
        anthropic.RateLimitError, 429, "rate limited", "https://api.anthropic.com/v1/messages",
    ))

    with pytest.raises(ProviderHttpError) as exc_info:
        await llm.generate([LLMMessage(role="user", content="Hi")])

    assert exc_info.value.status == 429
    assert exc_info.value.provider == "claude"


# Gemini


def test_gemini_build_request():
    """Test candidate-format request layout."""
    llm = GoogleGeminiLLM(api_key="g-key", max_tokens=300)

    request = llm.build_request(conversation(), [ACCOUNT_TOOL], system_prompt="Be brief.")

    config = request["config"]
    assert config["system_instruction"] == "Be brief."
    assert config["max_output_tokens"] == 300
    assert config["tools"][0]["function_declarations"][0]["name"] == "get_account_info"

    contents = request["contents"]
    assert [c["role"] for c in contents] == ["user", "model", "function"]

    model_parts = contents[1]["parts"]
    assert model_parts[0] == {"text": "Let me check."}
    assert model_parts[1]["function_call"] == {"name": "get_account_info", "args": {"address": ADDRESS}}
    assert model_parts[2]["function_call"]["name"] == "get_network_parameters"

    responses = [p["function_response"] for p in contents[2]["parts"]]
    assert len(responses) == 2
    assert responses[0] == {"name": "get_account_info", "response": {"result": '{"balance": 10}'}}
    assert responses[1]["name"] == "get_network_parameters"


def test_gemini_separate_turns_stay_separate():
    """Test that results of different turns are not merged together."""
    first = ToolCall(id="c1", name="get_account_info", arguments={"address": ADDRESS})
    second = ToolCall(id="c2", name="get_network_parameters", arguments={})
    messages = [
        LLMMessage(role="user", content="Hi"),
        LLMMessage(role="assistant", content="", tool_calls=[first]),
        LLMMessage(role="tool", content="a", tool_call_id="c1", name="get_account_info"),
        LLMMessage(role="assistant", content="", tool_calls=[second]),
        LLMMessage(role="tool", content="b", tool_call_id="c2", name="get_network_parameters"),
    ]

    contents = GoogleGeminiLLM(api_key="g-key").build_request(messages)["contents"]

    assert [c["role"] for c in contents] == ["user", "model", "function", "model", "function"]
    assert all(len(c["parts"]) == 1 for c in contents)


def test_gemini_parse_function_calls():
    """Test decoding function calls and synthesizing ids."""
    raw = gemini_response(
        {"text": "Looking up."},
        {"function_call": {"name": "get_account_info", "args": {"address": ADDRESS}}},
        {"function_call": {"name": "get_network_parameters", "args": {}}},
    )

    response = GoogleGeminiLLM(api_key="g-key").parse_response(raw)

    assert response.content == "Looking up."
    assert [tc.name for tc in response.tool_calls] == ["get_account_info", "get_network_parameters"]
    assert response.tool_calls[0].arguments == {"address": ADDRESS}
    assert response.tool_calls[0].id.startswith("gemini_")
    assert response.tool_calls[0].id != response.tool_calls[1].id
    assert response.stop_reason == "STOP"
    assert response.input_tokens == 30


def test_gemini_parse_without_candidates():
    """Test that an empty candidate list is a response error."""
    with pytest.raises(ProviderResponseError, match="no candidates"):
        GoogleGeminiLLM(api_key="g-key").parse_response({"candidates": []})


@pytest.mark.asyncio
async def test_gemini_http_error_mapping():
    """Test that API errors keep the vendor status and body."""
    llm = GoogleGeminiLLM(api_key="g-key")
    llm._client = MagicMock()
    llm._client.aio.models.generate_content = AsyncMock(side_effect=genai_errors.ClientError(
        400, {"error": {"code": 400, "message": "API key not valid", "status": "INVALID_ARGUMENT"}},
    ))

    with pytest.raises(ProviderHttpError) as exc_info:
        await llm.generate([LLMMessage(role="user", content="Hi")])

    assert exc_info.value.status == 400
    assert "API key not valid" in exc_info.value.body


@pytest.mark.asyncio
async def test_gemini_missing_key():
    """Test that Gemini refuses to run without a key."""
    llm = GoogleGeminiLLM(api_key="")
    llm._client = MagicMock()
    llm._client.aio.models.generate_content = AsyncMock()

    with pytest.raises(ConfigurationError, match="gemini"):
        await llm.generate([LLMMessage(role="user", content="Hi")])

    llm._client.aio.models.generate_content.assert_not_called()


@pytest.mark.asyncio
async def test_gemini_transport_error_mapping():
    """Test that network failures become transport errors."""
    llm = GoogleGeminiLLM(api_key="g-key")
    llm._client = MagicMock()
    llm._client.aio.models.generate_content = AsyncMock(side_effect=httpx.ConnectError("refused"))

    with pytest.raises(ProviderTransportError, match="refused"):
        await llm.generate([LLMMessage(role="user", content="Hi")])


# Shared behavior


@pytest.mark.parametrize("llm", [
    OpenAILLM(api_key="k"),
    OllamaLLM(),
    AnthropicLLM(api_key="k"),
    GoogleGeminiLLM(api_key="k"),
])
def test_build_request_does_not_mutate_messages(llm):
    """Test that request building leaves the conversation untouched."""
    messages = conversation()
    snapshot = copy.deepcopy(messages)

    llm.build_request(messages, [ACCOUNT_TOOL], system_prompt="Sys")
    llm.build_request(messages, [ACCOUNT_TOOL], system_prompt="Sys")

    assert messages == snapshot


@pytest.mark.parametrize("api_format,expected", [
    ("openai", OpenAILLM),
    ("ollama", OllamaLLM),
    ("claude", AnthropicLLM),
    ("gemini", GoogleGeminiLLM),
])
def test_create_llm_routes_by_format(api_format, expected):
    """Test factory routing by wire format."""
    config = LLMConfig(provider="custom", api_format=api_format, model="m", api_key="k")

    llm = create_llm(config)

    assert type(llm) is expected
    assert llm.model == "m"


def test_tool_choice_none_per_format():
    """Test that forbidding tool calls keeps tool history valid in every format."""
    messages = conversation()

    openai_request = OpenAILLM(api_key="k").build_request(messages, [ACCOUNT_TOOL], tool_choice="none")
    assert openai_request["tool_choice"] == "none"
    assert openai_request["tools"]

    claude_request = AnthropicLLM(api_key="k").build_request(messages, [ACCOUNT_TOOL], tool_choice="none")
    assert claude_request["tool_choice"] == {"type": "none"}
    assert claude_request["tools"]

    gemini_request = GoogleGeminiLLM(api_key="k").build_request(messages, [ACCOUNT_TOOL], tool_choice="none")
    assert gemini_request["config"]["tool_config"] == {"function_calling_config": {"mode": "NONE"}}

    ollama_request = OllamaLLM().build_request(messages, [ACCOUNT_TOOL], tool_choice="none")
    assert "tools" not in ollama_request


def test_anthropic_default_tool_choice_is_omitted():
    """Test that the vendor default is left implicit."""
    request = AnthropicLLM(api_key="k").build_request(conversation(), [ACCOUNT_TOOL])

    assert "tool_choice" not in request
