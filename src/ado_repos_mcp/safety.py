"""Safety helpers.

Implements deterministic secret detection/redaction rules and size limit helpers.

Key rule: if an agent-provided input appears to be a credential, reject the request
and do not echo the suspected secret value.
"""

from __future__ import annotations

import re
from typing import Any

from .errors import invalid_parameters

_CRED_FIELD_NAMES = {
    "token",
    "access_token",
    "authorization",
    "password",
    "pat",
    "personal_access_token",
    "jwt",
}

# Classic Azure DevOps PATs are 52 characters of lowercase base32.
_LEGACY_PAT_RE = re.compile(r"^[a-z2-7]{52}$")
_JWT_LIKE_RE = re.compile(r"^[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+$")
# An auth scheme followed by a single token, e.g. "Bearer eyJ..." or "Basic OnBhdA==".
_AUTH_HEADER_RE = re.compile(r"^(bearer|basic)\s+[A-Za-z0-9._~+/=-]+$", re.IGNORECASE)


def looks_like_secret_value(value: str) -> bool:
    """Return True if the value looks like a credential.

    Matching rules:
    - bearer/basic scheme followed by a single token (prose such as "Basic question: ..." is fine)
    - classic (52-char base32) and current (84-char, ``AZDO`` signature) Azure DevOps PATs
    - JWT-looking value treated as secret-like (conservative)
    """
    if not isinstance(value, str):
        return False
    trimmed = value.strip()
    if _AUTH_HEADER_RE.match(trimmed):
        return True
    if _LEGACY_PAT_RE.match(trimmed):
        return True
    if len(trimmed) == 84 and trimmed[76:80] == "AZDO":
        return True
    if len(trimmed) >= 40 and _JWT_LIKE_RE.match(trimmed):
        return True
    return False


def looks_like_credential_field_name(field_name: str) -> bool:
    """Return True if a key name looks like a credential field."""
    if not isinstance(field_name, str):
        return False
    return field_name.strip().lower() in _CRED_FIELD_NAMES


def validate_no_secrets(obj: Any) -> None:
    """Reject any agent-provided input that appears to contain credentials.

    Raises SafeError without echoing any suspected secret values.
    """
    if isinstance(obj, dict):
        for k, v in obj.items():
            if looks_like_credential_field_name(str(k)):
                raise invalid_parameters("Credential-like fields are not allowed")
            validate_no_secrets(v)
        return
    if isinstance(obj, list):
        for item in obj:
            validate_no_secrets(item)
        return
    if isinstance(obj, str):
        if looks_like_secret_value(obj):
            raise invalid_parameters("Credential-like values are not allowed")
        return


def enforce_max_bytes(*, data: bytes, max_bytes: int, what: str) -> None:
    """Enforce an upper bound on byte payloads."""
    if len(data) > max_bytes:
        raise invalid_parameters(f"{what} exceeds size limit")


def redact_text(text: str) -> str:
    """Return a redacted representation safe for logs."""
    if not isinstance(text, str):
        return "<non-string>"
    if looks_like_secret_value(text):
        return "<redacted>"
    return text
