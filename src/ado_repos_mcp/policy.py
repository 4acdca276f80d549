"""Policy evaluation.

This module enforces:
- operation allowlist
- read-only mode (no comment/thread creation)
"""

from __future__ import annotations

from dataclasses import dataclass

ALLOW_LISTED_OPERATIONS: frozenset[str] = frozenset(
    {
        "list_repos_by_project",
        "list_pull_requests_by_repo",
        "list_pull_requests_by_project",
        "list_branches_by_repo",
        "list_my_branches_by_repo",
        "list_pull_request_threads",
        "list_pull_request_thread_comments",
        "get_repo_by_name_or_id",
        "get_branch_by_name",
        "get_pull_request_by_id",
        "search_commits",
        "list_pull_requests_by_commits",
        "create_pull_request_comment",
    }
)

MUTATING_OPERATIONS: frozenset[str] = frozenset({"create_pull_request_comment"})


@dataclass(frozen=True, slots=True)
class PolicyDecision:
    """Policy decision result."""

    allowed: bool
    reason: str | None = None


class Policy:
    """Policy engine."""

    def __init__(self, *, read_only: bool) -> None:
        self._read_only = read_only

    @property
    def read_only(self) -> bool:
        return self._read_only

    def check_operation_allowed(self, operation: str) -> PolicyDecision:
        if operation not in ALLOW_LISTED_OPERATIONS:
            return PolicyDecision(allowed=False, reason="Operation is not allow-listed")
        if self._read_only and operation in MUTATING_OPERATIONS:
            return PolicyDecision(allowed=False, reason="Server is running in read-only mode")
        return PolicyDecision(allowed=True)
