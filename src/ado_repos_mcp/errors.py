"""Safe error types and serialization helpers.

Errors returned to agents must be non-secret and stable.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

INVALID_PARAMETERS = "InvalidParameters"
INVALID_ENUM_VALUE = "InvalidEnumValue"
IDENTITY_NOT_FOUND = "IdentityNotFound"
ENTITY_NOT_FOUND = "EntityNotFound"
BACKEND_UNAVAILABLE = "BackendUnavailable"

# Raised before any backend call is attempted.
PRE_FLIGHT_CODES: frozenset[str] = frozenset({INVALID_PARAMETERS, INVALID_ENUM_VALUE, "Forbidden", "Config"})


@dataclass(frozen=True, slots=True)
class SafeError(Exception):
    """An error safe to expose to agents.

    This must never include secrets (personal access tokens, bearer tokens, token file paths).
    """

    code: str
    message: str
    hint: str | None = None
    status_code: int | None = None

    def __str__(self) -> str:
        return self.message


def invalid_parameters(message: str, hint: str | None = None) -> SafeError:
    """Shape/type/range violation in tool arguments."""
    return SafeError(code=INVALID_PARAMETERS, message=message, hint=hint)


def invalid_enum_value(*, field: str, value: object, allowed: Iterable[str]) -> SafeError:
    """Unrecognized enum token; the allowed values are listed in the hint."""
    return SafeError(
        code=INVALID_ENUM_VALUE,
        message=f"Invalid value '{value}' for field '{field}'",
        hint=f"Allowed values: {', '.join(allowed)}",
    )


def identity_not_found(identifier: str) -> SafeError:
    """Identity lookup returned no usable match for the submitted identifier."""
    return SafeError(
        code=IDENTITY_NOT_FOUND,
        message=f"No user found with email/unique name: {identifier}",
    )


def entity_not_found(message: str, *, status_code: int | None = None) -> SafeError:
    """Repository, branch or pull request is absent."""
    return SafeError(code=ENTITY_NOT_FOUND, message=message, status_code=status_code)


def backend_unavailable(message: str, *, hint: str | None = None, status_code: int | None = None) -> SafeError:
    """Network, timeout, or authentication failure talking to Azure DevOps."""
    return SafeError(code=BACKEND_UNAVAILABLE, message=message, hint=hint, status_code=status_code)


def backend_auth_failed(*, status_code: int) -> SafeError:
    """Return a safe error for Azure DevOps 401/203/403 responses.

    Azure DevOps answers 203 with a sign-in page when a PAT is rejected.
    """
    return backend_unavailable(
        "Azure DevOps rejected the configured credentials",
        hint="The token may be expired, revoked, or missing the Code (Read) scope",
        status_code=status_code,
    )


def safe_error_to_result(err: SafeError) -> dict[str, Any]:
    """Convert a SafeError into the standard error envelope."""
    return to_error_result(code=err.code, message=err.message, hint=err.hint)


def to_error_result(*, code: str, message: str, hint: str | None = None) -> dict[str, Any]:
    """Build a standard tool error envelope."""
    out: dict[str, Any] = {"ok": False, "code": code, "message": message}
    if hint:
        out["hint"] = hint
    return out


def internal_error(message: str = "Internal error") -> dict[str, Any]:
    """Error for unexpected failures."""
    return to_error_result(code="Internal", message=message)
