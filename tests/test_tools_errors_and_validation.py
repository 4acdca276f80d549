"""Tool failure paths: every failure becomes an error-flagged envelope with one audit event."""

from __future__ import annotations

import json
import time
from dataclasses import dataclass
from typing import Any

import ado_repos_mcp.tools as tools
import pytest
from ado_repos_mcp.audit import AuditEvent
from ado_repos_mcp.config import AppConfig, LimitsConfig, PolicyConfig
from ado_repos_mcp.errors import (SafeError, backend_unavailable,
                                  entity_not_found)
from ado_repos_mcp.git_api import GitApi
from ado_repos_mcp.identity import IdentityResolver
from ado_repos_mcp.policy import Policy


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
        val = self._routes[key]
        if isinstance(val, Exception):
            raise val
        return val


def _runtime(
    *,
    routes: dict[tuple[str, str], object] | None = None,
    read_only: bool = False,
    limits: LimitsConfig | None = None,
) -> tuple[tools.Runtime, DummyAzureDevOps, DummyAudit]:
    cfg = AppConfig(
        organization="contoso",
        auth_type="pat",
        pat="not-used",
        token_file=None,
        policy=PolicyConfig(read_only=read_only),
        audit_log_path=None,
        audit_max_bytes=5 * 1024 * 1024,
        audit_max_backups=2,
        limits=limits or LimitsConfig(),
    )
    client = DummyAzureDevOps(routes or {})
    audit = DummyAudit(events=[])
    runtime = tools.Runtime(
        config=cfg,
        audit=audit,  # type: ignore[arg-type]
        policy=Policy(read_only=read_only),
        auth=None,  # type: ignore[arg-type]
        client=client,  # type: ignore[arg-type]
        git=GitApi(client=client, total_timeout_s=5.0),  # type: ignore[arg-type]
        identity=IdentityResolver(client=client, total_timeout_s=5.0),  # type: ignore[arg-type]
    )
    return runtime, client, audit


async def _error(monkeypatch: pytest.MonkeyPatch, runtime: tools.Runtime, name: str, args: Any) -> dict[str, Any]:
    monkeypatch.setattr(tools, "initialize_runtime_from_env", lambda **_: runtime)
    resp = await tools.dispatch_tool(name, args)
    assert resp.is_error is True
    payload = json.loads(resp.text)
    assert payload["ok"] is False
    assert payload["correlation_id"]
    return payload


@pytest.mark.asyncio
async def test_invalid_status_rejected_before_any_backend_call(monkeypatch: pytest.MonkeyPatch) -> None:
    runtime, client, audit = _runtime()

    payload = await _error(
        monkeypatch,
        runtime,
        "repo_list_pull_requests_by_repo",
        {"repositoryId": "r1", "status": "Merged", "created_by_me": True},
    )

    assert payload["code"] == "InvalidEnumValue"
    assert "Merged" in payload["message"]
    assert "Active" in payload["hint"]
    assert client.calls == []
    assert audit.events[0].outcome == "denied"


@pytest.mark.asyncio
async def test_unknown_creator_is_identity_not_found(monkeypatch: pytest.MonkeyPatch) -> None:
    runtime, client, audit = _runtime(routes={("GET", "/_apis/identities"): {"count": 0, "value": []}})

    payload = await _error(
        monkeypatch,
        runtime,
        "repo_list_pull_requests_by_project",
        {"project": "web", "created_by_user": "ghost@x.com"},
    )

    assert payload["code"] == "IdentityNotFound"
    assert payload["message"] == "No user found with email/unique name: ghost@x.com"
    assert [c["path"] for c in client.calls] == ["/_apis/identities"]
    assert audit.events[0].outcome == "failed"
    assert audit.events[0].error_code == "IdentityNotFound"


@pytest.mark.asyncio
async def test_missing_repository_is_entity_not_found(monkeypatch: pytest.MonkeyPatch) -> None:
    runtime, _, _ = _runtime(routes={("GET", "/web/_apis/git/repositories"): {"value": [{"id": "r1", "name": "api"}]}})

    payload = await _error(
        monkeypatch,
        runtime,
        "repo_get_repo_by_name_or_id",
        {"project": "web", "repositoryNameOrId": "nope"},
    )

    assert payload["code"] == "EntityNotFound"
    assert payload["message"] == "Repository nope not found in project web"


@pytest.mark.asyncio
async def test_missing_branch_is_entity_not_found(monkeypatch: pytest.MonkeyPatch) -> None:
    refs = {"value": [{"name": "refs/heads/main-old"}]}
    runtime, _, _ = _runtime(routes={("GET", "/_apis/git/repositories/r1/refs"): refs})

    payload = await _error(monkeypatch, runtime, "repo_get_branch_by_name", {"repositoryId": "r1", "branchName": "main"})

    assert payload["code"] == "EntityNotFound"
    assert payload["message"] == "Branch main not found in repository r1"


@pytest.mark.asyncio
async def test_backend_not_found_propagates(monkeypatch: pytest.MonkeyPatch) -> None:
    path = "/_apis/git/repositories/r1/pullrequests/99"
    runtime, _, _ = _runtime(routes={("GET", path): entity_not_found("TF401180: pull request not found", status_code=404)})

    payload = await _error(monkeypatch, runtime, "repo_get_pull_request_by_id", {"repositoryId": "r1", "pullRequestId": 99})

    assert payload["code"] == "EntityNotFound"


@pytest.mark.asyncio
async def test_backend_unavailable_propagates_hint(monkeypatch: pytest.MonkeyPatch) -> None:
    err = backend_unavailable("Azure DevOps request failed", hint="busy", status_code=503)
    runtime, _, _ = _runtime(routes={("GET", "/web/_apis/git/repositories"): err})

    payload = await _error(monkeypatch, runtime, "repo_list_repos_by_project", {"project": "web"})

    assert payload["code"] == "BackendUnavailable"
    assert payload["hint"] == "busy"


@pytest.mark.asyncio
async def test_read_only_mode_forbids_comment_creation(monkeypatch: pytest.MonkeyPatch) -> None:
    runtime, client, audit = _runtime(read_only=True)

    payload = await _error(
        monkeypatch,
        runtime,
        "repo_create_pull_request_comment",
        {"repositoryId": "r1", "pullRequestId": 7, "content": "hi"},
    )

    assert payload["code"] == "Forbidden"
    assert payload["hint"] == "Server is running in read-only mode"
    assert client.calls == []
    assert audit.events[0].outcome == "denied"


@pytest.mark.asyncio
async def test_unknown_tool_lists_available_tools(monkeypatch: pytest.MonkeyPatch) -> None:
    runtime, _, _ = _runtime()

    payload = await _error(monkeypatch, runtime, "repo_delete_repository", {})

    assert payload["code"] == "InvalidParameters"
    assert "repo_list_repos_by_project" in payload["hint"]


@pytest.mark.asyncio
async def test_missing_required_field(monkeypatch: pytest.MonkeyPatch) -> None:
    runtime, _, _ = _runtime()

    payload = await _error(monkeypatch, runtime, "repo_list_branches_by_repo", {})

    assert payload["message"] == "Missing required field: repositoryId"


@pytest.mark.asyncio
async def test_credential_like_arguments_are_rejected_without_echo(monkeypatch: pytest.MonkeyPatch) -> None:
    runtime, client, _ = _runtime()

    payload = await _error(
        monkeypatch,
        runtime,
        "repo_create_pull_request_comment",
        {"repositoryId": "r1", "pullRequestId": 7, "content": "Bearer s3cr3t"},
    )

    assert payload["code"] == "InvalidParameters"
    assert "s3cr3t" not in json.dumps(payload)
    assert client.calls == []


@pytest.mark.asyncio
async def test_oversized_comment_is_rejected(monkeypatch: pytest.MonkeyPatch) -> None:
    runtime, client, _ = _runtime(limits=LimitsConfig(comment_max_bytes=4))

    payload = await _error(
        monkeypatch,
        runtime,
        "repo_create_pull_request_comment",
        {"repositoryId": "r1", "pullRequestId": 7, "content": "too long"},
    )

    assert payload["message"] == "comment content exceeds size limit"
    assert client.calls == []


@pytest.mark.asyncio
async def test_line_end_before_line_start_is_rejected(monkeypatch: pytest.MonkeyPatch) -> None:
    runtime, client, _ = _runtime()

    payload = await _error(
        monkeypatch,
        runtime,
        "repo_create_pull_request_comment",
        {"repositoryId": "r1", "pullRequestId": 7, "content": "x", "filePath": "a.ts", "lineStart": 5, "lineEnd": 2},
    )

    assert payload["code"] == "InvalidParameters"
    assert client.calls == []


@pytest.mark.asyncio
async def test_unexpected_exception_becomes_internal_error(monkeypatch: pytest.MonkeyPatch) -> None:
    runtime, _, audit = _runtime(routes={("GET", "/web/_apis/git/repositories"): RuntimeError("boom")})

    payload = await _error(monkeypatch, runtime, "repo_list_repos_by_project", {"project": "web"})

    assert payload["code"] == "Internal"
    assert "boom" not in payload["message"]
    assert audit.events[0].error_code == "Internal"


@pytest.mark.asyncio
async def test_config_failure_is_reported_as_error(monkeypatch: pytest.MonkeyPatch) -> None:
    def boom(**_: Any) -> tools.Runtime:
        raise SafeError(code="Config", message="Missing required configuration (ADO_MCP_ORGANIZATION)")

    monkeypatch.setattr(tools, "initialize_runtime_from_env", boom)

    resp = await tools.dispatch_tool("repo_list_repos_by_project", {"project": "web"})

    assert resp.is_error is True
    assert json.loads(resp.text)["code"] == "Config"
