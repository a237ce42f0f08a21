"""
Wire types for the MCP tool server (JSON-RPC 2.0 over SSE).
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from ..errors import ToolExecutionError
from ..llm.base import ToolDefinition


class McpTool(BaseModel):
    """A tool catalog entry as advertised by tools/list."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    name: str
    description: str = ""
    input_schema: dict[str, Any] = Field(
        default_factory=lambda: {"type": "object", "properties": {}},
        alias="inputSchema",
    )

    def to_definition(self) -> ToolDefinition:
        """Convert to a tool definition for LLM."""
        return ToolDefinition(
            name=self.name,
            description=self.description,
            parameters=self.input_schema,
        )


class McpContent(BaseModel):
    """One content item of a tool result."""

    model_config = ConfigDict(extra="allow")

    type: str = "text"
    text: str = ""


class McpCallResult(BaseModel):
    """Result of tools/call.

    ``is_error`` marks a soft failure reported by the tool itself; the call
    still completed at the protocol level.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    content: list[McpContent] = Field(default_factory=list)
    is_error: bool = Field(default=False, alias="isError")

    @classmethod
    def error(cls, message: str) -> "McpCallResult":
        """Build an error-flagged result carrying ``message`` as text."""
        return cls(content=[McpContent(type="text", text=message)], is_error=True)

    @property
    def text(self) -> str:
        return "\n".join(item.text for item in self.content)

    def raise_for_error(self) -> None:
        if self.is_error:
            raise ToolExecutionError(self.text or "Tool reported an error")


class JsonRpcError(BaseModel):
    code: int | None = None
    message: str = "Unknown error"
    data: Any = None


class JsonRpcMessage(BaseModel):
    """Any inbound JSON-RPC message: a response or a notification."""

    model_config = ConfigDict(extra="allow")

    jsonrpc: str = "2.0"
    id: int | str | None = None
    method: str | None = None
    params: Any = None
    result: Any = None
    error: JsonRpcError | None = None

    @property
    def is_response(self) -> bool:
        return self.id is not None and self.method is None
