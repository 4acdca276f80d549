"""Azure DevOps REST client wrapper.

Provides:
- strict host allowlist and no-redirect behavior
- finite timeouts
- a single attempt per request (a failed write must never be replayed)
- safe error translation
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any

import httpx

from .config import LimitsConfig
from .errors import SafeError, backend_auth_failed, backend_unavailable, entity_not_found

logger = logging.getLogger(__name__)

API_VERSION = "7.1"

# service name -> host; the organization is appended as the first path segment.
_SERVICE_HOSTS: dict[str, str] = {
    "core": "https://dev.azure.com",
    "identity": "https://vssps.dev.azure.com",
}


@dataclass(frozen=True, slots=True)
class RequestBudget:
    """Budget for a single tool call."""

    total_timeout_s: float


class AzureDevOpsClient:
    """Minimal Azure DevOps REST client bound to one organization."""

    def __init__(
        self,
        *,
        token_provider,
        organization: str,
        limits: LimitsConfig,
        api_version: str = API_VERSION,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Create an Azure DevOps REST client.

        Args:
            token_provider: Async callable returning an ``AccessToken``; invoked per request.
            organization: Organization name (``https://dev.azure.com/<organization>``).
            limits: Timeout limits.
            api_version: REST ``api-version`` query parameter.
            transport: Optional httpx transport for tests.
        """
        if not organization or "/" in organization:
            raise SafeError(code="Config", message="Organization must be a bare organization name")

        self._token_provider = token_provider
        self._organization = organization
        self._limits = limits
        self._api_version = api_version
        self._transport = transport

    @property
    def organization(self) -> str:
        return self._organization

    def base_url(self, service: str = "core") -> str:
        host = _SERVICE_HOSTS.get(service)
        if host is None:
            raise SafeError(code="Config", message=f"Unknown Azure DevOps service: {service}")
        return f"{host}/{self._organization}"

    def _headers(self, authorization: str) -> dict[str, str]:
        return {
            "Authorization": authorization,
            "Accept": "application/json",
            "User-Agent": "ado-repos-mcp",
        }

    @staticmethod
    def _error_hint(resp: httpx.Response) -> str | None:
        try:
            err_payload = resp.json()
        except Exception:  # pylint: disable=broad-exception-caught
            return None
        if isinstance(err_payload, dict) and isinstance(err_payload.get("message"), str):
            return err_payload["message"]
        return None

    async def request_json(
        self,
        *,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json_body: Any = None,
        service: str = "core",
        budget: RequestBudget,
    ) -> Any:
        """Make a request and return decoded JSON (``None`` for an empty body).

        Azure DevOps collection endpoints return ``{"count": n, "value": [...]}``; callers unwrap.
        """
        url = f"{self.base_url(service)}{path}"
        query: dict[str, Any] = {k: v for k, v in (params or {}).items() if v is not None}
        query["api-version"] = self._api_version

        credential = await self._token_provider()

        timeout = httpx.Timeout(
            timeout=min(budget.total_timeout_s, self._limits.total_timeout_s),
            connect=self._limits.connect_timeout_s,
            read=self._limits.read_timeout_s,
        )

        logger.debug("Azure DevOps %s %s", method, path)
        try:
            async with httpx.AsyncClient(
                follow_redirects=False,
                timeout=timeout,
                transport=self._transport,
            ) as client:
                resp = await client.request(
                    method,
                    url,
                    headers=self._headers(credential.authorization_header()),
                    params=query,
                    json=json_body,
                )
        except httpx.HTTPError as exc:
            raise backend_unavailable("Network request failed") from exc

        # 203 (sign-in page) and 3xx redirects are how Azure DevOps rejects anonymous/invalid PATs.
        if resp.status_code in (401, 403, 203) or 300 <= resp.status_code < 400:
            raise backend_auth_failed(status_code=resp.status_code)

        if resp.status_code == 404:
            raise entity_not_found(
                self._error_hint(resp) or "Azure DevOps resource not found",
                status_code=404,
            )

        if resp.status_code >= 400:
            raise backend_unavailable(
                "Azure DevOps request failed",
                hint=self._error_hint(resp),
                status_code=resp.status_code,
            )

        if not resp.content:
            return None
        try:
            return resp.json()
        except json.JSONDecodeError as exc:
            raise backend_unavailable("Azure DevOps returned invalid JSON") from exc
