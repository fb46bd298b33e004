"""External scaler service: reports queue sizes and metric specs for scaled objects."""

from __future__ import annotations

import logging
import math
import os
import re
import threading
from dataclasses import dataclass, field
from typing import Callable, Mapping

from httpscaler.naming import metric_name
from httpscaler.queue_pinger import Count, QueuePinger

logger = logging.getLogger(__name__)

HTTP_SCALED_OBJECT_KEY = "httpScaledObject"
KEY_INTERCEPTOR_TARGET_PENDING_REQUESTS = "interceptorTargetPendingRequests"
ENV_STREAM_INTERVAL_MS = "KEDA_HTTP_SCALER_STREAM_INTERVAL_MS"
DEFAULT_STREAM_INTERVAL_MS = 200
DEFAULT_TARGET_PENDING_REQUESTS = 100

_INT64_MAX = 2**63 - 1
_INT64_MIN = -(2**63)
_INT_RE = re.compile(r"[+-]?[0-9]+")


class HTTPScaledObjectNotFound(LookupError):
    """Raised by a lookup when the requested HTTPScaledObject does not exist."""


class ScalerError(RuntimeError):
    """Raised when a scaler request cannot be answered."""


@dataclass(frozen=True)
class ScalingMetricSpec:
    """Which metric drives scaling; each field holds that metric's target value."""

    concurrency: int | None = None
    rate: int | None = None


@dataclass(frozen=True)
class HTTPScaledObject:
    """The parts of an HTTPScaledObject the scaler reads."""

    name: str
    namespace: str = ""
    hosts: tuple[str, ...] = ()
    target_pending_requests: int | None = None
    scaling_metric: ScalingMetricSpec | None = None


@dataclass(frozen=True)
class ScaledObjectRef:
    """Reference to a ScaledObject as sent by the autoscaler."""

    namespace: str
    name: str
    scaler_metadata: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class MetricSpec:
    metric_name: str
    target_size: int


@dataclass(frozen=True)
class MetricValue:
    metric_name: str
    metric_value: int


HTTPScaledObjectLookup = Callable[[str, str], HTTPScaledObject]


def _parse_int(text: str) -> int:
    if not _INT_RE.fullmatch(text):
        raise ValueError(f"invalid syntax: {text!r}")
    return int(text)


def _parse_int64(text: str) -> int:
    value = _parse_int(text)
    if not _INT64_MIN <= value <= _INT64_MAX:
        raise ValueError(f"value out of range: {text!r}")
    return value


def stream_interval_from_env(environ: Mapping[str, str] | None = None) -> float:
    """Return the stream interval in seconds, falling back to 200ms on bad input."""
    env = os.environ if environ is None else environ
    raw = env.get(ENV_STREAM_INTERVAL_MS, "")
    millis = DEFAULT_STREAM_INTERVAL_MS
    if raw:
        try:
            millis = _parse_int(raw)
        except ValueError:
            millis = DEFAULT_STREAM_INTERVAL_MS
    return millis / 1000.0


class ExternalScaler:
    """Answers the autoscaler's external-scaler requests from the pinger's counts."""

    def __init__(
        self,
        pinger: QueuePinger,
        lookup: HTTPScaledObjectLookup,
        default_target_metric: int,
        stream_interval: float | None = None,
        log: logging.Logger | None = None,
    ) -> None:
        self.pinger = pinger
        self.lookup = lookup
        self.target_metric = default_target_metric
        self.stream_interval = (
            stream_interval_from_env() if stream_interval is None else stream_interval
        )
        self._log = log or logger

    def ping(self) -> None:
        """Health probe; does nothing."""
        return None

    def is_active(self, ref: ScaledObjectRef) -> bool:
        """Return whether the referenced object has a positive metric value."""
        values = self.get_metrics(ref)
        if len(values) != 1:
            self._log.error("invalid GetMetrics response for %s/%s", ref.namespace, ref.name)
            raise ScalerError("len(metricValues) != 1")
        return values[0].metric_value > 0

    def stream_is_active(
        self,
        ref: ScaledObjectRef,
        send: Callable[[bool], None],
        stop_event: threading.Event,
    ) -> None:
        """Send the active state every stream interval until ``stop_event`` is set."""
        while not stop_event.wait(self.stream_interval):
            try:
                active = self.is_active(ref)
            except Exception:
                self._log.error("error getting active status in stream", exc_info=True)
                raise
            try:
                send(active)
            except Exception:
                self._log.error("error sending the active result in stream", exc_info=True)
                raise

    def get_metric_spec(self, ref: ScaledObjectRef) -> list[MetricSpec]:
        """Return the metric spec (name and target) for the referenced object."""
        name = metric_name(ref.namespace, ref.name)
        try:
            httpso = self.lookup(ref.namespace, ref.name)
        except HTTPScaledObjectNotFound:
            metadata = ref.scaler_metadata or {}
            if KEY_INTERCEPTOR_TARGET_PENDING_REQUESTS in metadata:
                return self._interceptor_metric_spec(
                    name, metadata[KEY_INTERCEPTOR_TARGET_PENDING_REQUESTS]
                )
            self._log.error(
                "unable to get HTTPScaledObject %s/%s", ref.namespace, ref.name
            )
            raise

        target = (
            httpso.target_pending_requests
            if httpso.target_pending_requests is not None
            else DEFAULT_TARGET_PENDING_REQUESTS
        )
        metric = httpso.scaling_metric
        if metric is not None:
            if metric.concurrency is not None:
                target = metric.concurrency
            if metric.rate is not None:
                target = metric.rate
        return [MetricSpec(metric_name=name, target_size=target)]

    def _interceptor_metric_spec(self, name: str, raw: str) -> list[MetricSpec]:
        try:
            target = _parse_int64(raw)
        except ValueError as exc:
            self._log.error("unable to parse interceptorTargetPendingRequests %r", raw)
            raise ScalerError(f"invalid interceptorTargetPendingRequests {raw!r}") from exc
        return [MetricSpec(metric_name=name, target_size=target)]

    def get_metrics(self, ref: ScaledObjectRef) -> list[MetricValue]:
        """Return the current metric value for the referenced object."""
        name = metric_name(ref.namespace, ref.name)
        metadata = ref.scaler_metadata or {}
        httpso_name = metadata.get(HTTP_SCALED_OBJECT_KEY)
        if httpso_name is None:
            if KEY_INTERCEPTOR_TARGET_PENDING_REQUESTS in metadata:
                return self._interceptor_metrics(name)
            self._log.error(
                "unable to get the linked HTTPScaledObject for ScaledObject %s/%s",
                ref.namespace,
                ref.name,
            )
            raise ScalerError("unable to get HTTPScaledObject reference")

        try:
            httpso = self.lookup(ref.namespace, httpso_name)
        except Exception:
            self._log.error("unable to get HTTPScaledObject %s/%s", ref.namespace, httpso_name)
            raise

        count = self.pinger.counts().get(f"{ref.namespace}/{ref.name}", Count())
        if httpso.scaling_metric is not None and httpso.scaling_metric.rate is not None:
            value = math.ceil(count.rps)
            self._log.debug("%d rps for %s", value, httpso.name)
        else:
            value = count.concurrency
            self._log.debug("%d concurrent requests for %s", value, httpso.name)
        return [MetricValue(metric_name=name, metric_value=int(value))]

    def _interceptor_metrics(self, name: str) -> list[MetricValue]:
        total = sum(count.concurrency for count in self.pinger.counts().values())
        if total < 0 or total > _INT64_MAX:
            self._log.error("count overflowed: %d", total)
            raise ScalerError("value out of range")
        return [MetricValue(metric_name=name, metric_value=total)]