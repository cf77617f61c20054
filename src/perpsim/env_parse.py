"""Environment variable parsing for perpsim configuration.

Every setting read from the environment goes through these helpers so
that booleans, integers, strings and ledger addresses behave identically
everywhere.

- Unset / empty / whitespace → default value.
- strict=True (default): malformed values raise ``ConfigError``.
- strict=False: malformed values log a warning and return the default.
"""

from __future__ import annotations

import logging
import os
import re

logger = logging.getLogger(__name__)

TRUTHY: frozenset[str] = frozenset({"1", "true", "yes", "on"})
FALSEY: frozenset[str] = frozenset({"0", "false", "no", "off", ""})

_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")
_PRIVATE_KEY_RE = re.compile(r"^(0x)?[0-9a-fA-F]{64}$")


class ConfigError(Exception):
    """Raised when an environment variable has an invalid value (strict mode)."""


def _raw(name: str) -> str | None:
    raw = os.environ.get(name)
    if raw is None:
        return None
    v = raw.strip()
    return v or None


def to_bool(raw: object, name: str) -> bool:
    """Coerce a config value to bool using the TRUTHY/FALSEY sets.

    Real booleans pass through; strings are matched case-insensitively.

    Raises:
        ConfigError: Value is neither truthy nor falsey
    """
    if isinstance(raw, bool):
        return raw
    v = str(raw).strip().lower()
    if v in TRUTHY:
        return True
    if v in FALSEY:
        return False
    raise ConfigError(f"invalid boolean value for {name}: {raw!r}")


def parse_bool(
    name: str,
    default: bool = False,
    *,
    strict: bool = True,
) -> bool:
    """Parse a boolean environment variable.

    Truthy: ``1 true yes on``; falsey: ``0 false no off ""`` (case-insensitive).
    """
    raw = os.environ.get(name)
    if raw is None:
        return default
    try:
        return to_bool(raw, name)
    except ConfigError:
        if strict:
            raise
    logger.warning("Invalid boolean value for %s: %r, using default %s", name, raw, default)
    return default


def parse_int(
    name: str,
    default: int,
    *,
    min_value: int | None = None,
    strict: bool = True,
) -> int:
    """Parse an integer environment variable with an optional lower bound."""
    v = _raw(name)
    if v is None:
        return default
    try:
        result = int(v)
    except ValueError:
        if strict:
            raise ConfigError(f"invalid integer value for {name}: {v!r}") from None
        logger.warning("Invalid integer value for %s: %r, using default %s", name, v, default)
        return default
    if min_value is not None and result < min_value:
        if strict:
            raise ConfigError(f"{name}={result} is below minimum {min_value}")
        logger.warning("%s=%d is below minimum %d, clamping", name, result, min_value)
        return min_value
    return result


def parse_str(name: str, default: str | None = None) -> str | None:
    """Parse a plain string variable (stripped; empty → default)."""
    v = _raw(name)
    return default if v is None else v


def parse_address(name: str, default: str | None = None) -> str | None:
    """Parse a 20-byte hex ledger address.

    Addresses are always validated: a malformed address is a configuration
    error regardless of strict mode.
    """
    v = _raw(name)
    if v is None:
        return default
    if not _ADDRESS_RE.match(v):
        raise ConfigError(f"invalid address for {name}: {v!r}")
    return v


def parse_private_key(name: str) -> str | None:
    """Parse a 32-byte hex private key, normalising the 0x prefix."""
    v = _raw(name)
    if v is None:
        return None
    if not _PRIVATE_KEY_RE.match(v):
        # Never echo key material
        raise ConfigError(f"invalid private key format for {name}")
    return v if v.startswith("0x") else f"0x{v}"
