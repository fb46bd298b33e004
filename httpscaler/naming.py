"""Metric name construction for scaled objects."""

from __future__ import annotations

import re

_UNSAFE_CHARS = re.compile(r"[^-.0-9A-Za-z]")


def _escape_char(match: re.Match[str]) -> str:
    return "_" + match.group(0).encode("utf-8").hex().upper().rjust(4, "0")


def escape_string(s: str) -> str:
    """Replace every character outside ``[-.0-9A-Za-z]`` with ``_`` and its hex bytes."""
    return _UNSAFE_CHARS.sub(_escape_char, s)


def metric_name(namespace: str, name: str) -> str:
    """Return the escaped metric name for the object ``namespace/name``."""
    return escape_string(f"http-{namespace}/{name}")