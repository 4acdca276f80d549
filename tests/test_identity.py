"""IdentityResolver tests using an in-memory Azure DevOps client stub."""

from __future__ import annotations

from typing import Any

import pytest
from ado_repos_mcp.errors import SafeError
from ado_repos_mcp.identity import (IdentityResolver,
                                    resolve_pull_request_identities)


class DummyClient:
    def __init__(self, routes: dict[str, object]) -> None:
        self._routes = routes
        self.calls: list[dict[str, Any]] = []

    async def request_json(self, **kwargs: Any) -> object:
        self.calls.append(dict(kwargs))
        path = str(kwargs.get("path"))
        if path not in self._routes:
            raise AssertionError(f"Unexpected Azure DevOps call: {path}")
        val = self._routes[path]
        if isinstance(val, Exception):
            raise val
        if callable(val):
            return val(kwargs)
        return val


def _resolver(routes: dict[str, object]) -> tuple[IdentityResolver, DummyClient]:
    client = DummyClient(routes)
    return IdentityResolver(client=client, total_timeout_s=5.0), client  # type: ignore[arg-type]


def _identities(kwargs: dict[str, Any]) -> dict[str, Any]:
    by_name = {"a@x.com": "id-a", "b@x.com": "id-b"}
    who = kwargs["params"]["filterValue"]
    return {"count": 1, "value": [{"id": by_name[who]}]} if who in by_name else {"count": 0, "value": []}


_CONNECTION = {"authenticatedUser": {"id": "id-me", "providerDisplayName": "Me"}}


@pytest.mark.asyncio
async def test_resolve_email_uses_identity_service() -> None:
    resolver, client = _resolver({"/_apis/identities": _identities})

    assert await resolver.resolve("a@x.com") == "id-a"
    assert client.calls[0]["service"] == "identity"
    assert client.calls[0]["params"] == {"searchFilter": "General", "filterValue": "a@x.com"}


@pytest.mark.asyncio
async def test_resolve_unknown_identity_raises_identity_not_found() -> None:
    resolver, _ = _resolver({"/_apis/identities": _identities})

    with pytest.raises(SafeError) as exc:
        await resolver.resolve("ghost@x.com")

    assert exc.value.code == "IdentityNotFound"
    assert "ghost@x.com" in exc.value.message


@pytest.mark.asyncio
async def test_resolve_match_without_id_is_identity_not_found() -> None:
    resolver, _ = _resolver({"/_apis/identities": {"value": [{"descriptor": "x"}]}})

    with pytest.raises(SafeError) as exc:
        await resolver.resolve("a@x.com")

    assert exc.value.code == "IdentityNotFound"


@pytest.mark.asyncio
async def test_resolve_rejects_empty_identifier_without_lookup() -> None:
    resolver, client = _resolver({})

    with pytest.raises(SafeError) as exc:
        await resolver.resolve("  ")

    assert exc.value.code == "InvalidParameters"
    assert client.calls == []


@pytest.mark.asyncio
async def test_resolve_current_reads_connection_data() -> None:
    resolver, client = _resolver({"/_apis/connectionData": _CONNECTION})

    assert await resolver.resolve_current() == "id-me"
    assert client.calls[0].get("service", "core") == "core"


@pytest.mark.asyncio
async def test_resolve_current_unexpected_payload_is_backend_unavailable() -> None:
    resolver, _ = _resolver({"/_apis/connectionData": {"authenticatedUser": None}})

    with pytest.raises(SafeError) as exc:
        await resolver.resolve_current()

    assert exc.value.code == "BackendUnavailable"


@pytest.mark.asyncio
async def test_explicit_user_wins_over_created_by_me() -> None:
    resolver, client = _resolver({"/_apis/identities": _identities, "/_apis/connectionData": _CONNECTION})

    out = await resolve_pull_request_identities(
        resolver,
        created_by_user="a@x.com",
        created_by_me=True,
        i_am_reviewer=False,
    )

    assert out.creator_id == "id-a"
    assert out.reviewer_id is None
    assert [c["path"] for c in client.calls] == ["/_apis/identities"]


@pytest.mark.asyncio
async def test_creator_and_reviewer_me_resolve_caller_once() -> None:
    resolver, client = _resolver({"/_apis/connectionData": _CONNECTION})

    out = await resolve_pull_request_identities(
        resolver,
        created_by_user=None,
        created_by_me=True,
        i_am_reviewer=True,
    )

    assert out.creator_id == "id-me"
    assert out.reviewer_id == "id-me"
    assert len(client.calls) == 1


@pytest.mark.asyncio
async def test_explicit_user_with_reviewer_me_sets_both_fields() -> None:
    resolver, _ = _resolver({"/_apis/identities": _identities, "/_apis/connectionData": _CONNECTION})

    out = await resolve_pull_request_identities(
        resolver,
        created_by_user="b@x.com",
        created_by_me=False,
        i_am_reviewer=True,
    )

    assert out.creator_id == "id-b"
    assert out.reviewer_id == "id-me"


@pytest.mark.asyncio
async def test_no_identity_filters_make_no_calls() -> None:
    resolver, client = _resolver({})

    out = await resolve_pull_request_identities(
        resolver,
        created_by_user=None,
        created_by_me=False,
        i_am_reviewer=False,
    )

    assert out.creator_id is None and out.reviewer_id is None
    assert client.calls == []
