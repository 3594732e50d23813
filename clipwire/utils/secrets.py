"""Helper utilities for working with secret environment variables."""

from __future__ import annotations

from pydantic import SecretStr


def secret_value(value: SecretStr | str | None) -> str | None:
    """Return the plaintext secret stripped of whitespace."""
    if value is None:
        return None
    if isinstance(value, SecretStr):
        raw = value.get_secret_value()
    else:
        raw = value
    stripped = raw.strip()
    return stripped or None


def mask_secret(value: SecretStr | str | None, visible: int = 4) -> str:
    """Render a secret for logs, keeping only its last few characters."""
    plain = secret_value(value)
    if not plain:
        return "<unset>"
    if len(plain) <= visible:
        return "*" * len(plain)
    return "*" * (len(plain) - visible) + plain[-visible:]
