"""
MCP session client - talks to the TRON tool server over the SSE transport.

The server pushes events over one long-lived GET stream; requests go out as
separate POSTs to the messages endpoint and their responses come back on the
stream, matched to the waiting caller by JSON-RPC id.

Handshake: endpoint event (session id) -> initialize -> notifications/initialized
-> tools/list.
"""

import asyncio
import itertools
from contextlib import suppress
from typing import Any, Callable

import httpx
import structlog
from httpx_sse import aconnect_sse
from pydantic import BaseModel, Field, ValidationError

from ..errors import McpRequestError, McpTimeoutError, McpTransportError, SessionConnectionError
from .types import JsonRpcMessage, McpCallResult, McpTool

logger = structlog.get_logger()

PROTOCOL_VERSION = "2025-03-26"
CLIENT_NAME = "tron-agent"
CLIENT_VERSION = "0.1.0"

MessageHandler = Callable[[JsonRpcMessage], None]


class _ToolsListResult(BaseModel):
    tools: list[McpTool] = Field(default_factory=list)


class McpSession:
    """One logical session with an MCP tool server.

    The pending-request map is cleared on disconnect without resolving the
    waiting futures; callers who need prompt cancellation should set
    ``request_timeout`` or race calls against their own timeout.
    """

    def __init__(
        self,
        server_url: str,
        *,
        client_name: str = CLIENT_NAME,
        client_version: str = CLIENT_VERSION,
        protocol_version: str = PROTOCOL_VERSION,
        request_timeout: float | None = None,
        headers: dict[str, str] | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.server_url = server_url.rstrip("/")
        self.client_name = client_name
        self.client_version = client_version
        self.protocol_version = protocol_version
        self.request_timeout = request_timeout
        self._headers = headers or {}
        self._external_client = http_client

        self._http: httpx.AsyncClient | None = None
        self._reader: asyncio.Task[None] | None = None
        self._session_id: str | None = None
        self._connected = False
        self._tools: list[McpTool] = []
        self._request_ids = itertools.count(1)
        self._pending: dict[int, asyncio.Future[Any]] = {}
        self._handlers: list[MessageHandler] = []

    def __repr__(self) -> str:
        return (
            f"McpSession(server_url={self.server_url!r}, "
            f"session_id={self._session_id!r}, connected={self._connected})"
        )

    async def __aenter__(self) -> "McpSession":
        await self.connect()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.disconnect()

    @property
    def connected(self) -> bool:
        return self._connected

    @property
    def session_id(self) -> str | None:
        return self._session_id

    @property
    def tools(self) -> list[McpTool]:
        return list(self._tools)

    @property
    def pending_count(self) -> int:
        """Number of requests still waiting for a response."""
        return len(self._pending)

    async def connect(self) -> None:
        """Open the SSE channel and run the handshake.

        Reconnecting tears the previous session down first.
        """
        if self._reader is not None or self._session_id is not None:
            await self.disconnect()

        loop = asyncio.get_running_loop()
        self._http = self._external_client or httpx.AsyncClient(
            timeout=httpx.Timeout(30.0, read=None),
            headers=self._headers,
        )
        endpoint: asyncio.Future[str] = loop.create_future()
        reader = asyncio.create_task(self._read_stream(self._http, endpoint))
        self._reader = reader

        handshake: asyncio.Future[None] | None = None
        try:
            await endpoint
            handshake = asyncio.ensure_future(self._initialize())
            done, _ = await asyncio.wait({handshake, reader}, return_when=asyncio.FIRST_COMPLETED)
            if handshake not in done:
                raise SessionConnectionError("SSE stream closed during MCP handshake")
            handshake.result()
        except BaseException as e:
            # Also reached when the caller cancels connect().
            if handshake is not None and not handshake.done():
                handshake.cancel()
                with suppress(asyncio.CancelledError):
                    await handshake
            await self.disconnect()
            if isinstance(e, Exception) and not isinstance(e, SessionConnectionError):
                logger.error("MCP handshake failed", server_url=self.server_url, error=str(e))
                raise SessionConnectionError(f"MCP handshake failed: {e}") from e
            raise

        logger.info(
            "Connected to MCP server",
            server_url=self.server_url,
            session_id=self._session_id,
            tool_count=len(self._tools),
        )

    async def disconnect(self) -> None:
        """Close the channel and forget all session state."""
        reader, self._reader = self._reader, None
        if reader is not None and not reader.done():
            reader.cancel()
            with suppress(asyncio.CancelledError):
                await reader

        if self._http is not None and self._http is not self._external_client:
            await self._http.aclose()
        self._http = None

        if self._pending:
            logger.warning("Discarding in-flight MCP requests", count=len(self._pending))

        self._session_id = None
        self._connected = False
        self._tools = []
        self._request_ids = itertools.count(1)
        self._pending.clear()

    async def list_tools(self) -> list[McpTool]:
        """Fetch the tool catalog and replace the cached copy."""
        result = await self._send_request("tools/list", {})
        try:
            parsed = _ToolsListResult.model_validate(result or {})
        except ValidationError as e:
            raise McpRequestError(None, f"Malformed tools/list result: {e}") from e

        self._tools = parsed.tools
        logger.info("Available tools", tools=[t.name for t in self._tools])
        return self.tools

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> McpCallResult:
        """Invoke a tool.

        A tool-level failure comes back as ``is_error=True``; protocol and
        network failures raise.
        """
        logger.debug("Calling tool", tool=name)
        result = await self._send_request("tools/call", {"name": name, "arguments": arguments})
        try:
            return McpCallResult.model_validate(result or {})
        except ValidationError as e:
            raise McpRequestError(None, f"Malformed tools/call result: {e}") from e

    def on_message(self, handler: MessageHandler) -> Callable[[], None]:
        """Subscribe to inbound messages that answer no pending request."""
        self._handlers.append(handler)

        def unsubscribe() -> None:
            if handler in self._handlers:
                self._handlers.remove(handler)

        return unsubscribe

    async def _initialize(self) -> None:
        result = await self._send_request("initialize", {
            "protocolVersion": self.protocol_version,
            "capabilities": {},
            "clientInfo": {
                "name": self.client_name,
                "version": self.client_version,
            },
        })
        server_info = result.get("serverInfo") if isinstance(result, dict) else None
        logger.info("MCP initialized", server_info=server_info)
        self._connected = True

        await self._send_notification("notifications/initialized")
        await self.list_tools()

    async def _send_request(self, method: str, params: Any = None) -> Any:
        request_id = next(self._request_ids)
        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future

        try:
            await self._post({
                "jsonrpc": "2.0",
                "id": request_id,
                "method": method,
                "params": params,
            })
        except BaseException:
            self._pending.pop(request_id, None)
            raise

        if self.request_timeout is None:
            return await future

        try:
            return await asyncio.wait_for(future, self.request_timeout)
        except asyncio.TimeoutError:
            self._pending.pop(request_id, None)
            raise McpTimeoutError(
                f"No response to '{method}' within {self.request_timeout}s"
            ) from None

    async def _send_notification(self, method: str, params: Any = None) -> None:
        message: dict[str, Any] = {"jsonrpc": "2.0", "method": method}
        if params is not None:
            message["params"] = params
        await self._post(message)

    async def _post(self, message: dict[str, Any]) -> None:
        if not self._session_id or self._http is None:
            raise SessionConnectionError("Not connected to MCP server")

        try:
            response = await self._http.post(
                f"{self.server_url}/messages",
                params={"sessionId": self._session_id},
                json=message,
            )
        except httpx.HTTPError as e:
            raise McpTransportError(f"Failed to send message: {e}") from e

        if response.is_error:
            raise McpTransportError(
                f"Failed to send message: {response.status_code} {response.reason_phrase}"
            )

    async def _read_stream(self, client: httpx.AsyncClient, endpoint: asyncio.Future[str]) -> None:
        url = f"{self.server_url}/sse"
        logger.info("Connecting to MCP server", url=url)

        try:
            async with aconnect_sse(client, "GET", url) as event_source:
                event_source.response.raise_for_status()
                logger.debug("SSE connection opened", url=url)
                async for event in event_source.aiter_sse():
                    if event.event == "endpoint":
                        self._handle_endpoint(event.data, endpoint)
                    elif event.event == "message":
                        self._handle_raw_message(event.data)
            error = SessionConnectionError("SSE stream closed by server")
        except Exception as e:
            logger.error("SSE error", url=url, error=str(e))
            error = SessionConnectionError(f"Failed to connect to MCP server: {e}")

        self._connected = False
        if endpoint.done():
            # Session is gone; in-flight calls are left alone, new ones fail.
            self._session_id = None
        else:
            endpoint.set_exception(error)

    def _handle_endpoint(self, data: str, endpoint: asyncio.Future[str]) -> None:
        url = httpx.URL(self.server_url + "/").join(data.strip())
        session_id = url.params.get("sessionId")
        logger.info("Received endpoint", endpoint=data, session_id=session_id)

        if endpoint.done():
            return
        if not session_id:
            endpoint.set_exception(
                SessionConnectionError(f"Endpoint event carried no sessionId: {data!r}")
            )
            return

        self._session_id = session_id
        endpoint.set_result(session_id)

    def _handle_raw_message(self, data: str) -> None:
        try:
            message = JsonRpcMessage.model_validate_json(data)
        except ValidationError as e:
            logger.error("Failed to parse MCP message", error=str(e))
            return
        self._dispatch(message)

    def _dispatch(self, message: JsonRpcMessage) -> None:
        if message.is_response:
            future = self._pending.pop(message.id, None)  # type: ignore[arg-type]
            if future is not None:
                if not future.done():
                    if message.error is not None:
                        future.set_exception(
                            McpRequestError(message.error.code, message.error.message)
                        )
                    else:
                        future.set_result(message.result)
                return

        for handler in list(self._handlers):
            try:
                handler(message)
            except Exception as e:
                logger.error("MCP message handler failed", method=message.method, error=str(e))
