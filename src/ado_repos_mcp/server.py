"""MCP server wiring for ado-repos-mcp.

Lists the registered tools/resources and turns dispatcher responses into MCP results. Error
responses are raised as ``ToolCallError`` so the MCP library reports them with ``isError``.
"""

from __future__ import annotations

import json
import logging
import sys
from typing import Any

try:
    from mcp.server import Server
    from mcp.types import Resource, TextContent, Tool
except ImportError as exc:  # pragma: no cover
    raise ImportError("MCP library not installed. Install with: pip install mcp") from exc

from . import __version__
from .errors import SafeError
from .policy import MUTATING_OPERATIONS
from .tools import (TOOL_REGISTRY, dispatch_tool, initialize_runtime_from_env,
                    public_tool_name)

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stderr)],
)
logger = logging.getLogger(__name__)

SERVER_NAME = "ado-repos-mcp"
STATUS_URI = "ado-repos-mcp://server-status"
CAPABILITIES_URI = "ado-repos-mcp://capabilities"

server = Server(SERVER_NAME)


class ToolCallError(Exception):
    """Carries an error envelope out of ``call_tool`` as an MCP error result."""


def build_tools() -> list[Tool]:
    return [
        Tool(
            name=public_tool_name(name),
            description=spec.description,
            inputSchema=json.loads(json.dumps(dict(spec.input_schema))),
        )
        for name, spec in TOOL_REGISTRY.items()
    ]


def build_resources() -> list[Resource]:
    return [
        Resource(
            uri=STATUS_URI,
            name="Server Status",
            description="Non-secret server configuration and limits",
        ),
        Resource(
            uri=CAPABILITIES_URI,
            name="Capabilities",
            description="Registered operations and safety constraints",
        ),
    ]


@server.list_tools()
async def list_tools() -> list[Tool]:
    """List all available tools."""
    tools = build_tools()
    logger.info("Listed %s tools", len(tools))
    return tools


@server.call_tool(validate_input=False)
async def call_tool(name: str, arguments: dict[str, Any]) -> list[TextContent]:
    """Execute a tool and return MCP-compliant TextContent."""
    logger.info("Tool called: %s", name)
    response = await dispatch_tool(name, arguments if isinstance(arguments, dict) else {})
    if response.is_error:
        raise ToolCallError(response.text)
    return [TextContent(type="text", text=response.text)]


@server.list_resources()
async def list_resources() -> list[Resource]:
    """List available resources."""
    return build_resources()


def _capabilities() -> dict[str, Any]:
    return {
        "server": SERVER_NAME,
        "version": __version__,
        "operations": sorted(public_tool_name(n) for n in TOOL_REGISTRY),
        "mutating_operations": sorted(public_tool_name(n) for n in MUTATING_OPERATIONS),
        "safety": {
            "credentials_from_host_only": True,
            "no_arbitrary_api_calls": True,
            "api_host_allowlist": ["https://dev.azure.com", "https://vssps.dev.azure.com"],
            "retries": False,
        },
    }


def _server_status() -> dict[str, Any]:
    status: dict[str, Any] = {
        "server": SERVER_NAME,
        "version": __version__,
        "tools_available": len(TOOL_REGISTRY),
        "configured": False,
    }
    try:
        runtime = initialize_runtime_from_env()
    except SafeError:
        return status

    status["configured"] = True
    status["organization"] = runtime.config.organization
    status["organization_url"] = runtime.config.organization_url
    status["auth_type"] = runtime.config.auth_type
    status["read_only"] = runtime.policy.read_only
    status["limits"] = {
        "total_timeout_s": runtime.config.limits.total_timeout_s,
        "comment_max_bytes": runtime.config.limits.comment_max_bytes,
    }
    status["audit"] = {"file_sink_enabled": runtime.config.audit_log_path is not None}
    return status


@server.read_resource()
async def read_resource(uri: Any) -> str:
    """Read resource content."""
    uri_s = uri if isinstance(uri, str) else str(uri)

    if uri_s == CAPABILITIES_URI:
        return json.dumps(_capabilities(), indent=2)
    if uri_s == STATUS_URI:
        return json.dumps(_server_status(), indent=2)
    return json.dumps({"ok": False, "code": "EntityNotFound", "message": "Unknown resource"}, indent=2)


async def run_server(organization: str | None = None) -> None:
    """Run the server over stdio."""
    # Fail fast on invalid/missing host configuration.
    try:
        _ = initialize_runtime_from_env(organization=organization)
    except SafeError as exc:
        logger.error("Startup configuration error: %s", exc.message)
        raise

    from mcp.server.stdio import stdio_server

    async with stdio_server() as (read_stream, write_stream):
        await server.run(read_stream, write_stream, server.create_initialization_options())


async def test_server() -> None:
    """Lightweight self-test: tool and resource metadata must build."""
    tools = build_tools()
    resources = build_resources()
    print(f"{len(tools)} tools, {len(resources)} resources OK", file=sys.stderr)
