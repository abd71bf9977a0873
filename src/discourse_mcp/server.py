"""MCP server exposing the forum operations and the per-session stats resource."""

import json
import logging
import weakref
from typing import Any, Dict, List, Sequence
from uuid import uuid4

from mcp.server.fastmcp import Context, FastMCP
from mcp.server.fastmcp.exceptions import ToolError
from mcp.types import TextContent
from mcp.types import Tool as MCPTool

from . import __version__
from .agent import ForumAgentService
from .services.session_store import SessionStore
from .settings import Settings

logger = logging.getLogger(__name__)

SERVER_NAME = "discourse-mcp"
STATS_RESOURCE_NAME = "request-stats"
STATS_RESOURCE_URI = "mcp://discourse/stats"
SESSION_HEADER = "mcp-session-id"

# Connection objects without a transport session id get a random token that
# lives exactly as long as the connection.
_CONNECTION_KEYS: "weakref.WeakKeyDictionary[Any, str]" = weakref.WeakKeyDictionary()


def session_key(ctx: Context) -> str:
    """Identify the calling MCP session.

    Streamable HTTP carries the id in a header, SSE in the ``session_id`` query
    parameter; otherwise the connection object itself identifies the session.
    """
    request = getattr(ctx.request_context, "request", None)
    if request is not None:
        session_id = request.headers.get(SESSION_HEADER) or request.query_params.get(
            "session_id"
        )
        if session_id:
            return session_id
    key = _CONNECTION_KEYS.get(ctx.session)
    if key is None:
        key = _CONNECTION_KEYS[ctx.session] = f"conn-{uuid4().hex}"
    return key


class DiscourseMCP(FastMCP):
    """FastMCP server whose tools come from the agent's operation registry.

    Tool calls bypass FastMCP's signature-derived validation: parameters go
    straight to the registry, which validates and shapes every outcome.
    """

    def __init__(
        self,
        service: ForumAgentService,
        store: SessionStore,
        **settings: Any,
    ) -> None:
        super().__init__(SERVER_NAME, **settings)
        self.service = service
        self.store = store
        self._mcp_server.version = __version__
        self.resource(
            STATS_RESOURCE_URI,
            name=STATS_RESOURCE_NAME,
            description="Request counters and cache status of the current session",
            mime_type="application/json",
        )(self._stats_resource)

    async def list_tools(self) -> List[MCPTool]:
        return [
            MCPTool(
                name=op.name,
                description=op.description,
                inputSchema=op.input_schema(),
            )
            for op in self.service.registry
        ]

    async def call_tool(
        self, name: str, arguments: Dict[str, Any]
    ) -> Sequence[TextContent]:
        state = await self.store.get(session_key(self.get_context()))
        result = await self.service.dispatch(state, name, arguments)
        await self.store.save(state)
        if result.is_error:
            # Reported to the client as a tool result with isError set.
            raise ToolError(result.to_text())
        return [TextContent(type="text", text=result.to_text())]

    async def _stats_resource(self) -> str:
        state = await self.store.get(session_key(self.get_context()))
        return json.dumps(self.service.stats(state), indent=2)


def build_server(
    settings: Settings,
    service: ForumAgentService | None = None,
    store: SessionStore | None = None,
) -> DiscourseMCP:
    """Create the MCP server. Raises ConfigurationError if credentials are missing."""
    settings.require_discourse_config()
    return DiscourseMCP(
        service=service or ForumAgentService.from_settings(settings),
        store=store or SessionStore.from_settings(settings),
        host=settings.host,
        port=settings.port,
        sse_path="/sse",
        message_path="/messages/",
        streamable_http_path="/mcp",
        debug=settings.debug,
        log_level=settings.log_level,
    )
