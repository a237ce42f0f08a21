"""
Error taxonomy for TRON Agent.

Hard failures (raised):
- SessionConnectionError: the tool server never reached a usable session
- McpTransportError / McpRequestError / McpTimeoutError: a single call failed
- ConfigurationError: the selected provider is missing a credential
- ProviderHttpError / ProviderTransportError / ProviderResponseError: LLM call failed

Soft failures (reported, not raised by the agent loop):
- ToolExecutionError, RunCancelledError, IterationLimitReached
"""


class TronAgentError(Exception):
    """Base class for all TRON Agent errors."""


class SessionConnectionError(TronAgentError, ConnectionError):
    """The transport channel never reached (or lost) a usable session state."""


class McpTransportError(TronAgentError):
    """Posting a message to the tool server failed."""


class McpRequestError(TronAgentError):
    """The tool server answered a request with a JSON-RPC error object."""

    def __init__(self, code: int | None, message: str):
        super().__init__(message)
        self.code = code
        self.message = message


class McpTimeoutError(TronAgentError):
    """No response arrived for a request within the configured timeout."""


class ConfigurationError(TronAgentError):
    """A required credential or setting for the selected provider is absent."""


class ProviderHttpError(TronAgentError):
    """An LLM vendor answered with a non-success HTTP status."""

    def __init__(self, provider: str, status: int, body: str):
        super().__init__(f"{provider} API error ({status}): {body}")
        self.provider = provider
        self.status = status
        self.body = body


class ProviderTransportError(TronAgentError):
    """The LLM vendor could not be reached."""


class ProviderResponseError(TronAgentError):
    """The LLM vendor returned a payload of an unexpected shape."""


class ToolExecutionError(TronAgentError):
    """A tool reported failure inside its result payload."""


class RunCancelledError(TronAgentError):
    """An agent run was aborted through its cancellation signal."""

    def __init__(self) -> None:
        super().__init__("Agent run was cancelled.")


class IterationLimitReached(TronAgentError):
    """The reasoning loop hit its iteration cap without a final answer."""

    def __init__(self, max_iterations: int):
        super().__init__(
            f"Reached maximum iterations ({max_iterations}). Providing best answer so far."
        )
        self.max_iterations = max_iterations
