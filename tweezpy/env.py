"""Environment-variable helpers for runtime settings.

These helpers centralize parsing/normalization of the environment variables
that override :class:`tweezpy.config.Settings` (truncation policy, tolerances,
sparse storage threshold).

Notes
-----
These are intentionally forgiving: invalid inputs fall back to defaults rather
than raising, so a stray variable never breaks an import.
"""

from __future__ import annotations

import os


def parse_float_env(name: str, *, default: float, minimum: float = 0.0) -> float:
    """Parse a floating point environment variable with a lower bound.

    Parameters
    ----------
    name:
        Environment variable name.
    default:
        Default value used when the variable is unset or invalid.
    minimum:
        Lower bound enforced on the returned value.

    Returns
    -------
    float
        Parsed value (at least ``minimum``).
    """

    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        return default
    if value != value:
        return default
    return max(minimum, value)


def normalize_powerloss(value: str, *, default: str = "warn") -> str:
    """Normalize the truncation power-loss policy selector.

    Parameters
    ----------
    value:
        A raw environment variable value.
    default:
        Policy returned for empty or unknown values.

    Returns
    -------
    str
        One of ``{'ignore', 'warn', 'error'}``.
    """

    value = value.strip().lower()
    if value in {"ignore", "warn", "error"}:
        return value
    return default


def env_overrides() -> dict:
    """Collect the settings overrides present in the environment.

    Returns
    -------
    dict
        Mapping of :class:`tweezpy.config.Settings` field names to values for
        every recognised variable that is set.
    """

    overrides: dict = {}
    if os.environ.get("TWEEZPY_POWERLOSS", "").strip():
        overrides["powerloss"] = normalize_powerloss(os.environ["TWEEZPY_POWERLOSS"])
    if os.environ.get("TWEEZPY_TRUNCATION_TOLERANCE", "").strip():
        overrides["truncation_tolerance"] = parse_float_env(
            "TWEEZPY_TRUNCATION_TOLERANCE", default=1e-6
        )
    if os.environ.get("TWEEZPY_SPARSE_THRESHOLD", "").strip():
        overrides["sparse_fill_threshold"] = min(
            1.0, parse_float_env("TWEEZPY_SPARSE_THRESHOLD", default=0.5)
        )
    return overrides
