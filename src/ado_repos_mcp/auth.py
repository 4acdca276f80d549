"""Azure DevOps credential source.

Supplies an access token per request: either the configured personal access token, or a
bearer token re-read from a host-managed file (so an external process can refresh it).
Secrets (token values, the token file path) must never be exposed.
"""

from __future__ import annotations

import base64
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

import jwt

from .config import AppConfig
from .errors import SafeError, backend_unavailable

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class AccessToken:
    """A credential ready to be placed in an Authorization header."""

    token: str = field(repr=False)
    scheme: str = "Bearer"

    def authorization_header(self) -> str:
        if self.scheme == "Basic":
            encoded = base64.b64encode(f":{self.token}".encode("utf-8")).decode("ascii")
            return f"Basic {encoded}"
        return f"Bearer {self.token}"


def _check_not_expired(token: str, *, leeway_s: int = 30) -> None:
    """Reject bearer tokens whose JWT ``exp`` claim has passed.

    Opaque (non-JWT) tokens are accepted as-is; Azure DevOps is authoritative.
    """
    try:
        claims = jwt.decode(token, options={"verify_signature": False})
    except jwt.InvalidTokenError:
        return

    exp = claims.get("exp")
    if not isinstance(exp, (int, float)):
        return
    remaining = exp - datetime.now(timezone.utc).timestamp()
    if remaining <= leeway_s:
        raise backend_unavailable(
            "Azure DevOps bearer token is expired",
            hint="Refresh the token file configured by the host",
        )


class AzureDevOpsAuth:
    """Resolves the credential for a single organization binding."""

    def __init__(self, *, config: AppConfig) -> None:
        self._config = config

    async def get_access_token(self) -> AccessToken:
        """Return the credential to use for the next request (never cached)."""
        if self._config.auth_type == "pat":
            if not self._config.pat:
                raise SafeError(code="Config", message="Personal access token is not configured")
            return AccessToken(token=self._config.pat, scheme="Basic")

        token_file = self._config.token_file
        if token_file is None:
            raise SafeError(code="Config", message="Bearer token file is not configured")
        try:
            token = token_file.read_text(encoding="utf-8").strip()
        except OSError as exc:
            logger.error("Bearer token file could not be read")
            raise backend_unavailable("Bearer token is unavailable") from exc
        if not token:
            raise backend_unavailable("Bearer token is unavailable", hint="The token file is empty")

        _check_not_expired(token)
        return AccessToken(token=token, scheme="Bearer")
