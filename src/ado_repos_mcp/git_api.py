"""Typed Azure DevOps Git queries on top of the REST transport."""

from __future__ import annotations

from typing import Any
from urllib.parse import quote

from .ado_client import AzureDevOpsClient, RequestBudget
from .criteria import (CommitSearchCriteria, NewComment, NewThread,
                       PullRequestQuery, PullRequestSearchCriteria,
                       RefCriteria)
from .errors import backend_unavailable


def _seg(value: str | int) -> str:
    return quote(str(value), safe="")


def _scope(project: str | None) -> str:
    return f"/{_seg(project)}" if project else ""


def _values(data: Any, what: str) -> list[dict[str, Any]]:
    """Unwrap a ``{"count": n, "value": [...]}`` collection."""
    if isinstance(data, dict):
        data = data.get("value")
    if data is None:
        return []
    if not isinstance(data, list):
        raise backend_unavailable(f"Unexpected {what} response")
    return [item for item in data if isinstance(item, dict)]


def _object(data: Any, what: str) -> dict[str, Any]:
    if not isinstance(data, dict):
        raise backend_unavailable(f"Unexpected {what} response")
    return data


class GitApi:
    """Git repositories, refs, pull requests, threads and commits."""

    def __init__(self, *, client: AzureDevOpsClient, total_timeout_s: float) -> None:
        self._client = client
        self._total_timeout_s = total_timeout_s

    def _budget(self) -> RequestBudget:
        return RequestBudget(total_timeout_s=self._total_timeout_s)

    async def _get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        return await self._client.request_json(method="GET", path=path, params=params, budget=self._budget())

    async def _post(self, path: str, body: Any) -> Any:
        return await self._client.request_json(method="POST", path=path, json_body=body, budget=self._budget())

    @staticmethod
    def _pull_request_path(repository_id: str, pull_request_id: int, project: str | None = None) -> str:
        return f"{_scope(project)}/_apis/git/repositories/{_seg(repository_id)}/pullRequests/{_seg(pull_request_id)}"

    async def get_repositories(self, project: str) -> list[dict[str, Any]]:
        data = await self._get(
            f"/{_seg(project)}/_apis/git/repositories",
            {"includeLinks": False, "includeAllUrls": False, "includeHidden": False},
        )
        return _values(data, "repositories")

    async def get_pull_requests(
        self,
        repository_id: str,
        criteria: PullRequestSearchCriteria,
        *,
        skip: int,
        top: int,
    ) -> list[dict[str, Any]]:
        params: dict[str, Any] = criteria.to_params()
        params.update({"$skip": skip, "$top": top})
        data = await self._get(f"/_apis/git/repositories/{_seg(repository_id)}/pullrequests", params)
        return _values(data, "pull requests")

    async def get_pull_requests_by_project(
        self,
        project: str,
        criteria: PullRequestSearchCriteria,
        *,
        skip: int,
        top: int,
    ) -> list[dict[str, Any]]:
        params: dict[str, Any] = criteria.to_params()
        params.update({"$skip": skip, "$top": top})
        data = await self._get(f"/{_seg(project)}/_apis/git/pullrequests", params)
        return _values(data, "pull requests")

    async def get_refs(self, repository_id: str, criteria: RefCriteria) -> list[dict[str, Any]]:
        data = await self._get(f"/_apis/git/repositories/{_seg(repository_id)}/refs", criteria.to_params())
        return _values(data, "refs")

    async def get_pull_request(
        self,
        repository_id: str,
        pull_request_id: int,
        *,
        include_work_item_refs: bool = False,
    ) -> dict[str, Any]:
        data = await self._get(
            f"/_apis/git/repositories/{_seg(repository_id)}/pullrequests/{_seg(pull_request_id)}",
            {"includeWorkItemRefs": include_work_item_refs},
        )
        return _object(data, "pull request")

    async def get_threads(
        self,
        repository_id: str,
        pull_request_id: int,
        *,
        project: str | None = None,
        iteration: int | None = None,
        base_iteration: int | None = None,
    ) -> list[dict[str, Any]]:
        data = await self._get(
            f"{self._pull_request_path(repository_id, pull_request_id, project)}/threads",
            {"$iteration": iteration, "$baseIteration": base_iteration},
        )
        return _values(data, "threads")

    async def get_comments(
        self,
        repository_id: str,
        pull_request_id: int,
        thread_id: int,
        *,
        project: str | None = None,
    ) -> list[dict[str, Any]]:
        data = await self._get(
            f"{self._pull_request_path(repository_id, pull_request_id, project)}/threads/{_seg(thread_id)}/comments"
        )
        return _values(data, "comments")

    async def get_commits(self, repository: str, criteria: CommitSearchCriteria, *, project: str) -> list[dict[str, Any]]:
        data = await self._get(
            f"/{_seg(project)}/_apis/git/repositories/{_seg(repository)}/commits",
            criteria.to_params(),
        )
        return _values(data, "commits")

    async def get_pull_request_query(self, query: PullRequestQuery, repository: str, *, project: str) -> dict[str, Any]:
        data = await self._post(
            f"/{_seg(project)}/_apis/git/repositories/{_seg(repository)}/pullrequestquery",
            query.to_body(),
        )
        return _object(data, "pull request query")

    async def create_comment(
        self,
        comment: NewComment,
        repository_id: str,
        pull_request_id: int,
        thread_id: int,
        *,
        project: str | None = None,
    ) -> dict[str, Any]:
        data = await self._post(
            f"{self._pull_request_path(repository_id, pull_request_id, project)}/threads/{_seg(thread_id)}/comments",
            comment.to_body(),
        )
        return _object(data, "comment")

    async def create_thread(
        self,
        thread: NewThread,
        repository_id: str,
        pull_request_id: int,
        *,
        project: str | None = None,
    ) -> dict[str, Any]:
        data = await self._post(
            f"{self._pull_request_path(repository_id, pull_request_id, project)}/threads",
            thread.to_body(),
        )
        return _object(data, "thread")
