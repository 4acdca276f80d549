"""MCP call_tool wiring tests."""

from __future__ import annotations

import json
import time
from dataclasses import dataclass
from typing import Any

import ado_repos_mcp.server as server
import ado_repos_mcp.tools as tools
import pytest
from ado_repos_mcp.audit import AuditEvent
from ado_repos_mcp.config import AppConfig, LimitsConfig, PolicyConfig
from ado_repos_mcp.git_api import GitApi
from ado_repos_mcp.identity import IdentityResolver
from ado_repos_mcp.policy import Policy
from ado_repos_mcp.tools import ToolResponse
from mcp.types import CallToolRequest, CallToolRequestParams, CallToolResult


@pytest.mark.asyncio
async def test_call_tool_returns_text_content_on_success(monkeypatch: pytest.MonkeyPatch) -> None:
    seen: dict[str, object] = {}

    async def fake_dispatch(name: str, arguments: dict) -> ToolResponse:
        seen["name"] = name
        seen["arguments"] = arguments
        return ToolResponse(text=json.dumps(["main"]))

    monkeypatch.setattr(server, "dispatch_tool", fake_dispatch)

    out = await server.call_tool("repo_list_branches_by_repo", {"repositoryId": "r1"})

    assert seen == {"name": "repo_list_branches_by_repo", "arguments": {"repositoryId": "r1"}}
    assert len(out) == 1
    assert out[0].type == "text"
    assert json.loads(out[0].text) == ["main"]


@pytest.mark.asyncio
async def test_call_tool_raises_error_envelope(monkeypatch: pytest.MonkeyPatch) -> None:
    envelope = json.dumps({"ok": False, "code": "EntityNotFound", "message": "gone", "correlation_id": "c"})

    async def fake_dispatch(name: str, arguments: dict) -> ToolResponse:
        return ToolResponse(text=envelope, is_error=True)

    monkeypatch.setattr(server, "dispatch_tool", fake_dispatch)

    with pytest.raises(server.ToolCallError) as exc:
        await server.call_tool("repo_get_pull_request_by_id", {"repositoryId": "r", "pullRequestId": 1})

    assert json.loads(str(exc.value))["code"] == "EntityNotFound"


@pytest.mark.asyncio
async def test_call_tool_tolerates_missing_arguments(monkeypatch: pytest.MonkeyPatch) -> None:
    seen: dict[str, object] = {}

    async def fake_dispatch(name: str, arguments: dict) -> ToolResponse:
        seen["arguments"] = arguments
        return ToolResponse(text="[]")

    monkeypatch.setattr(server, "dispatch_tool", fake_dispatch)

    await server.call_tool("repo_list_repos_by_project", None)  # type: ignore[arg-type]

    assert seen["arguments"] == {}


@pytest.mark.asyncio
async def test_self_test_reports_counts(capsys: pytest.CaptureFixture[str]) -> None:
    await server.test_server()

    assert "13 tools, 2 resources OK" in capsys.readouterr().err


@dataclass
class DummyAudit:
    events: list[AuditEvent]

    def write_event(self, event: AuditEvent) -> None:
        self.events.append(event)

    def measure_start(self) -> float:
        return time.monotonic()

    def measure_duration_ms(self, start: float) -> int:
        return int((time.monotonic() - start) * 1000)


class DummyAzureDevOps:
    def __init__(self, routes: dict[tuple[str, str], object]) -> None:
        self._routes = routes
        self.calls: list[dict[str, Any]] = []

    async def request_json(self, **kwargs: Any) -> object:
        self.calls.append(dict(kwargs))
        key = (str(kwargs.get("method")), str(kwargs.get("path")))
        if key not in self._routes:
            raise AssertionError(f"Unexpected Azure DevOps call: {key}")
        return self._routes[key]


def _install_runtime(
    monkeypatch: pytest.MonkeyPatch, routes: dict[tuple[str, str], object]
) -> tuple[DummyAudit, DummyAzureDevOps]:
    cfg = AppConfig(
        organization="contoso",
        auth_type="pat",
        pat="not-used",
        token_file=None,
        policy=PolicyConfig(read_only=False),
        audit_log_path=None,
        audit_max_bytes=1024,
        audit_max_backups=1,
        limits=LimitsConfig(),
    )
    client = DummyAzureDevOps(routes)
    audit = DummyAudit(events=[])
    runtime = tools.Runtime(
        config=cfg,
        audit=audit,  # type: ignore[arg-type]
        policy=Policy(read_only=False),
        auth=None,  # type: ignore[arg-type]
        client=client,  # type: ignore[arg-type]
        git=GitApi(client=client, total_timeout_s=5.0),  # type: ignore[arg-type]
        identity=IdentityResolver(client=client, total_timeout_s=5.0),  # type: ignore[arg-type]
    )
    monkeypatch.setattr(tools, "initialize_runtime_from_env", lambda **_: runtime)
    return audit, client


async def _call_via_mcp(name: str, arguments: dict[str, Any]) -> CallToolResult:
    handler = server.server.request_handlers[CallToolRequest]
    result = await handler(
        CallToolRequest(method="tools/call", params=CallToolRequestParams(name=name, arguments=arguments))
    )
    assert isinstance(result.root, CallToolResult)
    return result.root


@pytest.mark.asyncio
async def test_mcp_request_with_bad_enum_reaches_dispatcher(monkeypatch: pytest.MonkeyPatch) -> None:
    audit, client = _install_runtime(monkeypatch, {})

    result = await _call_via_mcp("repo_list_pull_requests_by_repo", {"repositoryId": "R", "status": "Merged"})

    assert result.isError is True
    payload = json.loads(result.content[0].text)  # type: ignore[union-attr]
    assert payload["code"] == "InvalidEnumValue"
    assert "Active" in payload["hint"]
    assert payload["correlation_id"]
    assert client.calls == []
    assert len(audit.events) == 1
    assert audit.events[0].error_code == "InvalidEnumValue"
    assert audit.events[0].correlation_id == payload["correlation_id"]


@pytest.mark.asyncio
async def test_mcp_request_with_unexpected_field_is_audited(monkeypatch: pytest.MonkeyPatch) -> None:
    audit, _ = _install_runtime(monkeypatch, {})

    result = await _call_via_mcp("repo_list_branches_by_repo", {"repositoryId": "R", "extra": 1})

    assert result.isError is True
    assert json.loads(result.content[0].text)["code"] == "InvalidParameters"  # type: ignore[union-attr]
    assert [e.outcome for e in audit.events] == ["denied"]


@pytest.mark.asyncio
async def test_mcp_request_success_returns_text(monkeypatch: pytest.MonkeyPatch) -> None:
    refs = {"value": [{"name": "refs/heads/main"}, {"name": "refs/heads/dev"}]}
    audit, _ = _install_runtime(monkeypatch, {("GET", "/_apis/git/repositories/R/refs"): refs})

    result = await _call_via_mcp("repo_list_branches_by_repo", {"repositoryId": "R"})

    assert result.isError is False
    assert json.loads(result.content[0].text) == ["main", "dev"]  # type: ignore[union-attr]
    assert [e.outcome for e in audit.events] == ["succeeded"]
