"""Identity resolution for "created by"/"reviewer" filters.

Every call goes to Azure DevOps; nothing is cached between tool invocations.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from .ado_client import AzureDevOpsClient, RequestBudget
from .errors import backend_unavailable, identity_not_found, invalid_parameters


@dataclass(frozen=True, slots=True)
class PullRequestIdentities:
    """Resolved creator/reviewer ids for a pull request listing."""

    creator_id: str | None = None
    reviewer_id: str | None = None


class IdentityResolver:
    """Resolves emails/unique names and the calling identity to Azure DevOps user ids."""

    def __init__(self, *, client: AzureDevOpsClient, total_timeout_s: float) -> None:
        self._client = client
        self._total_timeout_s = total_timeout_s

    def _budget(self) -> RequestBudget:
        return RequestBudget(total_timeout_s=self._total_timeout_s)

    async def resolve(self, identifier: str) -> str:
        """Resolve an email or unique name to a user id.

        Raises:
            SafeError: ``InvalidParameters`` for an empty identifier, ``IdentityNotFound`` when
                the identity service has no usable match.
        """
        if not isinstance(identifier, str) or not identifier.strip():
            raise invalid_parameters("User identifier must be a non-empty string")

        data = await self._client.request_json(
            method="GET",
            path="/_apis/identities",
            params={"searchFilter": "General", "filterValue": identifier},
            service="identity",
            budget=self._budget(),
        )
        identities = data.get("value") if isinstance(data, dict) else None
        if not isinstance(identities, list) or not identities:
            raise identity_not_found(identifier)

        first: Any = identities[0]
        user_id = first.get("id") if isinstance(first, dict) else None
        if not isinstance(user_id, str) or not user_id:
            raise identity_not_found(identifier)
        return user_id

    async def resolve_current(self) -> str:
        """Return the id of the identity the configured credential authenticates as."""
        data = await self._client.request_json(
            method="GET",
            path="/_apis/connectionData",
            budget=self._budget(),
        )
        user = data.get("authenticatedUser") if isinstance(data, dict) else None
        user_id = user.get("id") if isinstance(user, dict) else None
        if not isinstance(user_id, str) or not user_id:
            raise backend_unavailable("Unexpected connection data response")
        return user_id


async def resolve_pull_request_identities(
    resolver: IdentityResolver,
    *,
    created_by_user: str | None,
    created_by_me: bool,
    i_am_reviewer: bool,
) -> PullRequestIdentities:
    """Resolve the identity filters of a pull request listing.

    An explicit ``created_by_user`` wins over ``created_by_me``. The calling identity is looked
    up at most once, even when it is both the creator and the reviewer.
    """
    creator_id: str | None = None
    reviewer_id: str | None = None
    current: str | None = None

    if created_by_user:
        creator_id = await resolver.resolve(created_by_user)
    elif created_by_me:
        current = await resolver.resolve_current()
        creator_id = current

    if i_am_reviewer:
        reviewer_id = current if current is not None else await resolver.resolve_current()

    return PullRequestIdentities(creator_id=creator_id, reviewer_id=reviewer_id)
