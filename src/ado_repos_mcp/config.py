"""Configuration loading for ado-repos-mcp.

Configuration is supplied by the host environment (e.g., MCP client config), not by the agent.
Credentials (personal access token, bearer token file path) are treated as secrets and must never
be emitted to agents, logs, or audit reasons.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path

from .errors import SafeError

AUTH_TYPES: tuple[str, ...] = ("pat", "bearer")

_ORGANIZATION_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9-]{0,48}[A-Za-z0-9]?$")


@dataclass(frozen=True, slots=True)
class PolicyConfig:
    """Policy guardrails configuration."""

    read_only: bool


@dataclass(frozen=True, slots=True)
class LimitsConfig:
    """Non-functional safety limits."""

    # Network
    total_timeout_s: float = 60.0
    connect_timeout_s: float = 5.0
    read_timeout_s: float = 30.0

    # Payload limits
    comment_max_bytes: int = 150 * 1024


@dataclass(frozen=True, slots=True)
class AppConfig:
    """Organization binding and credential source configuration."""

    organization: str
    auth_type: str
    pat: str | None = field(repr=False)
    token_file: Path | None = field(repr=False)

    policy: PolicyConfig
    audit_log_path: Path | None
    audit_max_bytes: int
    audit_max_backups: int
    limits: LimitsConfig

    @property
    def organization_url(self) -> str:
        return f"https://dev.azure.com/{self.organization}"


def _parse_bool(value: str | None) -> bool:
    if value is None:
        return False
    normalized = value.strip().lower()
    return normalized in {"1", "true", "yes", "on"}


def _parse_organization(value: str | None) -> str:
    if not value or not value.strip():
        raise SafeError(
            code="Config",
            message="Missing required configuration (ADO_MCP_ORGANIZATION)",
        )
    organization = value.strip()
    if not _ORGANIZATION_RE.match(organization):
        raise SafeError(code="Config", message="ADO_MCP_ORGANIZATION must be a bare organization name")
    return organization


def load_config_from_env(*, organization: str | None = None) -> AppConfig:
    """Load and validate configuration from environment variables.

    Args:
        organization: Optional override for ADO_MCP_ORGANIZATION (e.g. from the CLI).

    Raises:
        SafeError: If configuration is missing/invalid.
    """
    org = _parse_organization(organization or os.getenv("ADO_MCP_ORGANIZATION"))

    auth_type = (os.getenv("ADO_MCP_AUTH_TYPE") or "pat").strip().lower()
    if auth_type not in AUTH_TYPES:
        raise SafeError(code="Config", message="ADO_MCP_AUTH_TYPE must be one of: pat, bearer")

    pat: str | None = None
    token_file: Path | None = None
    if auth_type == "pat":
        pat = os.getenv("ADO_MCP_PAT")
        if not pat:
            raise SafeError(code="Config", message="ADO_MCP_PAT is required when ADO_MCP_AUTH_TYPE=pat")
    else:
        token_file_raw = os.getenv("ADO_MCP_TOKEN_FILE")
        if not token_file_raw:
            raise SafeError(code="Config", message="ADO_MCP_TOKEN_FILE is required when ADO_MCP_AUTH_TYPE=bearer")
        token_file = Path(token_file_raw)
        if not token_file.is_absolute():
            raise SafeError(code="Config", message="ADO_MCP_TOKEN_FILE must be an absolute path")
        # Fail fast if missing; never echo the path. Contents are re-read on every call.
        if not token_file.is_file():
            raise SafeError(code="Config", message="Bearer token file is missing or not a file")

    read_only = _parse_bool(os.getenv("ADO_MCP_READ_ONLY"))

    audit_path_raw = os.getenv("ADO_MCP_AUDIT_LOG_PATH")
    audit_path: Path | None = None
    if audit_path_raw:
        p = Path(audit_path_raw)
        if not p.is_absolute():
            raise SafeError(code="Config", message="ADO_MCP_AUDIT_LOG_PATH must be an absolute path when set")
        audit_path = p

    return AppConfig(
        organization=org,
        auth_type=auth_type,
        pat=pat,
        token_file=token_file,
        policy=PolicyConfig(read_only=read_only),
        audit_log_path=audit_path,
        audit_max_bytes=5 * 1024 * 1024,
        audit_max_backups=2,
        limits=LimitsConfig(),
    )
