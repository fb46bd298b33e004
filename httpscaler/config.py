"""Scaler configuration read from environment variables."""

from __future__ import annotations

import os
import re
from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal
from typing import Callable, Mapping

ENV_GRPC_PORT = "KEDA_HTTP_SCALER_PORT"
ENV_TARGET_NAMESPACE = "KEDA_HTTP_SCALER_TARGET_ADMIN_NAMESPACE"
ENV_TARGET_SERVICE = "KEDA_HTTP_SCALER_TARGET_ADMIN_SERVICE"
ENV_TARGET_DEPLOYMENT = "KEDA_HTTP_SCALER_TARGET_ADMIN_DEPLOYMENT"
ENV_TARGET_PORT = "KEDA_HTTP_SCALER_TARGET_ADMIN_PORT"
ENV_TARGET_PENDING_REQUESTS = "KEDA_HTTP_SCALER_TARGET_PENDING_REQUESTS"
ENV_CONFIG_MAP_RSYNC = "KEDA_HTTP_SCALER_CONFIG_MAP_INFORMER_RSYNC_PERIOD"
ENV_DEPLOYMENT_RSYNC = "KEDA_HTTP_SCALER_DEPLOYMENT_INFORMER_RSYNC_PERIOD"
ENV_QUEUE_TICK = "KEDA_HTTP_QUEUE_TICK_DURATION"


class ConfigError(ValueError):
    """Raised when the configuration is missing or malformed."""


_NANOS_PER_UNIT = {
    "ns": Decimal(1),
    "us": Decimal(1_000),
    "\u00b5s": Decimal(1_000),
    "\u03bcs": Decimal(1_000),
    "ms": Decimal(1_000_000),
    "s": Decimal(1_000_000_000),
    "m": Decimal(60_000_000_000),
    "h": Decimal(3_600_000_000_000),
}

_UNIT_PATTERN = r"([0-9]*(?:\.[0-9]*)?)(ns|us|\u00b5s|\u03bcs|ms|s|m|h)"
_UNIT_RE = re.compile(_UNIT_PATTERN)
_DURATION_RE = re.compile(rf"(?:{_UNIT_PATTERN})+")


def parse_duration(text: str) -> timedelta:
    """Parse a duration such as ``500ms``, ``60m`` or ``1h30m``."""
    body = text
    negative = False
    if body[:1] in ("+", "-"):
        negative = body[0] == "-"
        body = body[1:]
    if body == "0":
        return timedelta(0)
    if not body or not _DURATION_RE.fullmatch(body):
        raise ConfigError(f"invalid duration {text!r}")
    total = Decimal(0)
    for number, unit in _UNIT_RE.findall(body):
        if not any(ch.isdigit() for ch in number):
            raise ConfigError(f"invalid duration {text!r}")
        total += Decimal(number) * _NANOS_PER_UNIT[unit]
    micros = int(total) // 1000
    return timedelta(microseconds=-micros if negative else micros)


def _parse_int(text: str) -> int:
    digits = text.lstrip("+-")
    sign = -1 if text.startswith("-") else 1
    try:
        if len(digits) > 1 and digits[0] == "0" and digits.isdigit():
            return sign * int(digits, 8)
        return int(text, 0)
    except ValueError as exc:
        raise ConfigError(f"invalid integer {text!r}") from exc


@dataclass(frozen=True)
class ScalerConfig:
    """Settings for the external scaler process."""

    target_namespace: str
    target_service: str
    target_deployment: str
    target_port: int
    grpc_port: int = 8080
    target_pending_requests: int = 100
    config_map_cache_rsync_period: timedelta = timedelta(minutes=60)
    deployment_cache_rsync_period: timedelta = timedelta(minutes=60)
    queue_tick_duration: timedelta = timedelta(milliseconds=500)


_FIELDS: tuple[tuple[str, str, Callable[[str], object], str | None], ...] = (
    ("grpc_port", ENV_GRPC_PORT, _parse_int, "8080"),
    ("target_namespace", ENV_TARGET_NAMESPACE, str, None),
    ("target_service", ENV_TARGET_SERVICE, str, None),
    ("target_deployment", ENV_TARGET_DEPLOYMENT, str, None),
    ("target_port", ENV_TARGET_PORT, _parse_int, None),
    ("target_pending_requests", ENV_TARGET_PENDING_REQUESTS, _parse_int, "100"),
    ("config_map_cache_rsync_period", ENV_CONFIG_MAP_RSYNC, parse_duration, "60m"),
    ("deployment_cache_rsync_period", ENV_DEPLOYMENT_RSYNC, parse_duration, "60m"),
    ("queue_tick_duration", ENV_QUEUE_TICK, parse_duration, "500ms"),
)


def parse_config(environ: Mapping[str, str] | None = None) -> ScalerConfig:
    """Build a ScalerConfig from the environment, raising ConfigError on problems."""
    env = os.environ if environ is None else environ
    values: dict[str, object] = {}
    for field, key, convert, default in _FIELDS:
        if key in env:
            raw = env[key]
        elif default is not None:
            raw = default
        else:
            raise ConfigError(f"required key {key} missing value")
        try:
            values[field] = convert(raw)
        except ConfigError as exc:
            raise ConfigError(f"{key}: {exc}") from exc
    return ScalerConfig(**values)  # type: ignore[arg-type]