"""
MCP transport: session client for the TRON tool server.
"""

from .session import McpSession
from .types import JsonRpcMessage, McpCallResult, McpContent, McpTool

__all__ = [
    "McpSession",
    "McpTool",
    "McpContent",
    "McpCallResult",
    "JsonRpcMessage",
]
