"""Projection of Azure DevOps objects onto the minimal tool schema.

Projectors never mutate their input; they build new dicts. Deleted comments are dropped on both
the trimmed and the full-response paths.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from .criteria import BRANCH_REF_PREFIX


def _identity_ref(obj: Any) -> dict[str, Any]:
    obj = obj if isinstance(obj, dict) else {}
    return {
        "displayName": obj.get("displayName"),
        "uniqueName": obj.get("uniqueName"),
    }


def is_deleted(comment: Any) -> bool:
    return isinstance(comment, dict) and bool(comment.get("isDeleted"))


def live_comments(comments: Iterable[dict[str, Any]] | None) -> list[dict[str, Any]]:
    if not comments:
        return []
    return [c for c in comments if isinstance(c, dict) and not is_deleted(c)]


def project_repository(repo: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": repo.get("id"),
        "name": repo.get("name"),
        "isDisabled": repo.get("isDisabled"),
        "isFork": repo.get("isFork"),
        "isInMaintenance": repo.get("isInMaintenance"),
        "webUrl": repo.get("webUrl"),
        "size": repo.get("size"),
    }


def project_pull_request(pr: dict[str, Any], *, include_repository: bool = False) -> dict[str, Any]:
    """Trim a pull request; project-wide listings also carry the repository name."""
    out: dict[str, Any] = {
        "pullRequestId": pr.get("pullRequestId"),
        "codeReviewId": pr.get("codeReviewId"),
    }
    if include_repository:
        repository = pr.get("repository")
        out["repository"] = repository.get("name") if isinstance(repository, dict) else None
    out.update(
        {
            "status": pr.get("status"),
            "createdBy": _identity_ref(pr.get("createdBy")),
            "creationDate": pr.get("creationDate"),
            "title": pr.get("title"),
            "isDraft": pr.get("isDraft"),
            "sourceRefName": pr.get("sourceRefName"),
            "targetRefName": pr.get("targetRefName"),
        }
    )
    return out


def branch_short_names(refs: Iterable[dict[str, Any]]) -> list[str]:
    """Names of ``refs/heads/*`` refs with the prefix stripped; other refs are dropped."""
    names: list[str] = []
    for ref in refs:
        name = ref.get("name") if isinstance(ref, dict) else None
        if isinstance(name, str) and name.startswith(BRANCH_REF_PREFIX):
            names.append(name[len(BRANCH_REF_PREFIX) :])
    return names


def project_comment(comment: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": comment.get("id"),
        "author": _identity_ref(comment.get("author")),
        "content": comment.get("content"),
        "publishedDate": comment.get("publishedDate"),
        "lastUpdatedDate": comment.get("lastUpdatedDate"),
        "lastContentUpdatedDate": comment.get("lastContentUpdatedDate"),
    }


def project_comments(comments: Iterable[dict[str, Any]] | None, *, full_response: bool = False) -> list[dict[str, Any]]:
    kept = live_comments(comments)
    if full_response:
        return kept
    return [project_comment(c) for c in kept]


def project_thread(thread: dict[str, Any], *, full_response: bool = False) -> dict[str, Any]:
    if full_response:
        out = dict(thread)
        if "comments" in thread:
            out["comments"] = live_comments(thread.get("comments"))
        return out
    return {
        "id": thread.get("id"),
        "publishedDate": thread.get("publishedDate"),
        "lastUpdatedDate": thread.get("lastUpdatedDate"),
        "status": thread.get("status"),
        "threadContext": thread.get("threadContext"),
        "comments": project_comments(thread.get("comments")),
    }


def project_threads(threads: Iterable[dict[str, Any]], *, full_response: bool = False) -> list[dict[str, Any]]:
    return [project_thread(t, full_response=full_response) for t in threads]


def project_created_comment(comment: dict[str, Any], *, thread_id: int) -> dict[str, Any]:
    return {
        "id": comment.get("id"),
        "author": _identity_ref(comment.get("author")),
        "content": comment.get("content"),
        "publishedDate": comment.get("publishedDate"),
        "threadId": thread_id,
    }


def project_created_thread(thread: dict[str, Any]) -> dict[str, Any]:
    return {
        "id": thread.get("id"),
        "status": thread.get("status"),
        "threadContext": thread.get("threadContext"),
        "comments": project_comments(thread.get("comments")),
    }
