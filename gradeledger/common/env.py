"""Environment variable parsing shared by configuration dataclasses."""

from __future__ import annotations

import os


def parse_positive_int(env_var: str, default: int) -> int:
    """Read a positive integer env var, falling back to a default.

    Raises
    ------
    ValueError
        If the variable is set to anything but a positive integer.

    """
    raw = os.environ.get(env_var, "")
    if not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        msg = f"{env_var} must be an integer, got: {raw!r}"
        raise ValueError(msg) from exc
    if value < 1:
        msg = f"{env_var} must be positive, got: {value}"
        raise ValueError(msg)
    return value
