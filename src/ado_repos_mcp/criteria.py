"""Search criteria builders.

Each builder is a pure function that turns validated tool arguments (plus identities that were
already resolved) into a frozen criteria object. The criteria objects know how to render
themselves as Azure DevOps query parameters or request bodies.

Enum tokens are checked against closed lookup tables; unknown values raise
``InvalidEnumValue`` and never fall back to a default.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any

from .errors import invalid_enum_value, invalid_parameters

# Public token -> backend enum value (GitInterfaces numbering).
PULL_REQUEST_STATUSES: Mapping[str, int] = MappingProxyType(
    {
        "NotSet": 0,
        "Active": 1,
        "Abandoned": 2,
        "Completed": 3,
        "All": 4,
    }
)

VERSION_TYPES: Mapping[str, int] = MappingProxyType(
    {
        "Branch": 0,
        "Tag": 1,
        "Commit": 2,
    }
)

PULL_REQUEST_QUERY_TYPES: Mapping[str, int] = MappingProxyType(
    {
        "NotSet": 0,
        "LastMergeCommit": 1,
        "Commit": 2,
    }
)

# Tool-facing thread status -> backend CommentThreadStatus token.
THREAD_STATUSES: Mapping[str, str] = MappingProxyType(
    {
        "active": "Active",
        "byDesign": "ByDesign",
        "closed": "Closed",
        "fixed": "Fixed",
        "pending": "Pending",
        "unknown": "Unknown",
        "wontFix": "WontFix",
    }
)

COMMENT_THREAD_STATUS_VALUES: Mapping[str, int] = MappingProxyType(
    {
        "Unknown": 0,
        "Active": 1,
        "Fixed": 2,
        "WontFix": 3,
        "Closed": 4,
        "ByDesign": 5,
        "Pending": 6,
    }
)

COMMENT_TYPE_TEXT = 1
BRANCH_REF_PREFIX = "refs/heads/"
BRANCH_REF_FILTER = "heads/"


def lookup_enum(table: Mapping[str, Any], *, field: str, value: object) -> Any:
    """Return ``table[value]`` or raise ``InvalidEnumValue`` listing the allowed tokens."""
    if not isinstance(value, str) or value not in table:
        raise invalid_enum_value(field=field, value=value, allowed=table.keys())
    return table[value]


def _camel(token: str) -> str:
    # REST query strings take enum names in camelCase ("Active" -> "active").
    return token[:1].lower() + token[1:]


@dataclass(frozen=True, slots=True)
class PullRequestSearchCriteria:
    """Filters for pull request listings."""

    status: str
    repository_id: str | None = None
    creator_id: str | None = None
    reviewer_id: str | None = None

    def to_params(self) -> dict[str, str]:
        params = {"searchCriteria.status": _camel(self.status)}
        if self.repository_id is not None:
            params["searchCriteria.repositoryId"] = self.repository_id
        if self.creator_id is not None:
            params["searchCriteria.creatorId"] = self.creator_id
        if self.reviewer_id is not None:
            params["searchCriteria.reviewerId"] = self.reviewer_id
        return params


@dataclass(frozen=True, slots=True)
class RefCriteria:
    """Filters for branch (ref) listings."""

    filter: str = BRANCH_REF_FILTER
    filter_contains: str | None = None
    include_my_branches: bool = False

    def to_params(self) -> dict[str, Any]:
        params: dict[str, Any] = {"filter": self.filter}
        if self.filter_contains:
            params["filterContains"] = self.filter_contains
        if self.include_my_branches:
            params["includeMyBranches"] = True
        return params


@dataclass(frozen=True, slots=True)
class VersionDescriptor:
    version: str
    version_type: str


@dataclass(frozen=True, slots=True)
class CommitSearchCriteria:
    """Commit history query."""

    from_commit_id: str | None = None
    to_commit_id: str | None = None
    item_version: VersionDescriptor | None = None
    include_links: bool = False
    include_work_items: bool = False
    skip: int = 0
    top: int = 10

    def to_params(self) -> dict[str, Any]:
        params: dict[str, Any] = {
            "searchCriteria.includeLinks": self.include_links,
            "searchCriteria.includeWorkItems": self.include_work_items,
            "searchCriteria.$skip": self.skip,
            "searchCriteria.$top": self.top,
        }
        if self.from_commit_id:
            params["searchCriteria.fromCommitId"] = self.from_commit_id
        if self.to_commit_id:
            params["searchCriteria.toCommitId"] = self.to_commit_id
        if self.item_version is not None:
            params["searchCriteria.itemVersion.version"] = self.item_version.version
            params["searchCriteria.itemVersion.versionType"] = _camel(self.item_version.version_type)
        return params


@dataclass(frozen=True, slots=True)
class PullRequestQuery:
    """Reverse lookup of pull requests from commit ids."""

    items: tuple[str, ...]
    query_type: str

    def to_body(self) -> dict[str, Any]:
        return {
            "queries": [
                {
                    "items": list(self.items),
                    "type": PULL_REQUEST_QUERY_TYPES[self.query_type],
                }
            ]
        }


@dataclass(frozen=True, slots=True)
class ThreadContext:
    """File/line anchor for a new thread; the same span is used on both diff sides."""

    file_path: str
    start_line: int
    end_line: int

    def to_body(self) -> dict[str, Any]:
        start = {"line": self.start_line, "offset": 1}
        end = {"line": self.end_line, "offset": 1}
        return {
            "filePath": self.file_path,
            "leftFileStart": dict(start),
            "leftFileEnd": dict(end),
            "rightFileStart": dict(start),
            "rightFileEnd": dict(end),
        }


@dataclass(frozen=True, slots=True)
class NewComment:
    content: str

    def to_body(self) -> dict[str, Any]:
        return {"content": self.content, "commentType": COMMENT_TYPE_TEXT}


@dataclass(frozen=True, slots=True)
class NewThread:
    """A new thread carrying its first comment."""

    content: str
    status: str
    context: ThreadContext | None = None

    def to_body(self) -> dict[str, Any]:
        body: dict[str, Any] = {
            "comments": [NewComment(self.content).to_body()],
            "status": COMMENT_THREAD_STATUS_VALUES[self.status],
        }
        if self.context is not None:
            body["threadContext"] = self.context.to_body()
        return body


def build_pull_request_criteria(
    *,
    status: str,
    repository_id: str | None = None,
    creator_id: str | None = None,
    reviewer_id: str | None = None,
) -> PullRequestSearchCriteria:
    lookup_enum(PULL_REQUEST_STATUSES, field="status", value=status)
    return PullRequestSearchCriteria(
        status=status,
        repository_id=repository_id,
        creator_id=creator_id,
        reviewer_id=reviewer_id,
    )


def build_ref_criteria(*, filter_contains: str | None = None, include_my_branches: bool = False) -> RefCriteria:
    return RefCriteria(filter_contains=filter_contains or None, include_my_branches=include_my_branches)


def build_commit_criteria(
    *,
    from_commit: str | None = None,
    to_commit: str | None = None,
    version: str | None = None,
    version_type: str = "Branch",
    include_links: bool = False,
    include_work_items: bool = False,
    skip: int = 0,
    top: int = 10,
) -> CommitSearchCriteria:
    """Build a commit query; the version descriptor is only attached when ``version`` is set."""
    lookup_enum(VERSION_TYPES, field="versionType", value=version_type)
    item_version = VersionDescriptor(version=version, version_type=version_type) if version else None
    return CommitSearchCriteria(
        from_commit_id=from_commit,
        to_commit_id=to_commit,
        item_version=item_version,
        include_links=include_links,
        include_work_items=include_work_items,
        skip=skip,
        top=top,
    )


def build_pull_request_query(*, commits: Sequence[str], query_type: str = "LastMergeCommit") -> PullRequestQuery:
    lookup_enum(PULL_REQUEST_QUERY_TYPES, field="queryType", value=query_type)
    if not commits:
        raise invalid_parameters("Field 'commits' must contain at least one commit id")
    return PullRequestQuery(items=tuple(commits), query_type=query_type)


def thread_status_token(status: str) -> str:
    """Map a tool-facing thread status ("byDesign") to the backend token ("ByDesign")."""
    return lookup_enum(THREAD_STATUSES, field="status", value=status)


def build_thread_context(
    *,
    file_path: str | None,
    line_start: int | None,
    line_end: int | None = None,
) -> ThreadContext | None:
    """Anchor a thread to a file only when both a path and a start line are supplied."""
    if not file_path or line_start is None:
        return None
    end = line_start if line_end is None else line_end
    if end < line_start:
        raise invalid_parameters("Field 'lineEnd' must be >= 'lineStart'")
    return ThreadContext(file_path=file_path, start_line=line_start, end_line=end)


def build_new_comment(*, content: str) -> NewComment:
    return NewComment(content=content)


def build_new_thread(
    *,
    content: str,
    status: str = "active",
    file_path: str | None = None,
    line_start: int | None = None,
    line_end: int | None = None,
) -> NewThread:
    return NewThread(
        content=content,
        status=thread_status_token(status),
        context=build_thread_context(file_path=file_path, line_start=line_start, line_end=line_end),
    )
