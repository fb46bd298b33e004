"""Polls every interceptor behind a service for its queue counts and aggregates them."""

from __future__ import annotations

import enum
import logging
import queue
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Iterable, Mapping

logger = logging.getLogger(__name__)

EndpointsFn = Callable[[str, str], Iterable[str]]
CountsFn = Callable[[str], Mapping[str, "Count"]]

_EVENT_POLL_SECONDS = 0.05


@dataclass(frozen=True)
class Count:
    """Pending-request concurrency and request rate for one host."""

    concurrency: int = 0
    rps: float = 0.0

    def __add__(self, other: "Count") -> "Count":
        return Count(self.concurrency + other.concurrency, self.rps + other.rps)


class PingerStatus(enum.IntEnum):
    UNKNOWN = 0
    ACTIVE = 1
    ERROR = 2


class NoEndpointsError(RuntimeError):
    """Raised when a service has no interceptor endpoints to query."""


def fetch_counts(
    endpoints_fn: EndpointsFn,
    counts_fn: CountsFn,
    namespace: str,
    service_name: str,
    admin_port: int | str,
) -> dict[str, Count]:
    """Query every endpoint of the service concurrently and sum the counts per host.

    ``endpoints_fn(namespace, service_name)`` yields endpoint addresses;
    ``counts_fn(url)`` returns the host-to-Count mapping served at ``url``.
    Any failure is raised after all requests finish.
    """
    urls = [
        f"http://{address}:{admin_port}"
        for address in endpoints_fn(namespace, service_name)
    ]
    if not urls:
        raise NoEndpointsError("there isn't any valid interceptor endpoint")

    with ThreadPoolExecutor(max_workers=len(urls)) as pool:
        futures = [(url, pool.submit(counts_fn, url)) for url in urls]
        results = []
        for url, future in futures:
            try:
                results.append(future.result())
            except Exception:
                logger.error("getting queue counts from interceptor %s", url, exc_info=True)
                raise

    totals: dict[str, Count] = {}
    for result in results:
        for host, count in result.items():
            totals[host] = totals.get(host, Count()) + count
    return totals


class QueuePinger:
    """Keeps the latest aggregated queue counts of all interceptors."""

    def __init__(
        self,
        endpoints_fn: EndpointsFn,
        counts_fn: CountsFn,
        namespace: str,
        service_name: str,
        deployment_name: str,
        admin_port: int | str,
        log: logging.Logger | None = None,
    ) -> None:
        self.endpoints_fn = endpoints_fn
        self.counts_fn = counts_fn
        self.namespace = namespace
        self.service_name = service_name
        self.deployment_name = deployment_name
        self.admin_port = admin_port
        self.status = PingerStatus.UNKNOWN
        self.last_ping_time: float | None = None
        self._log = log or logger
        self._lock = threading.RLock()
        self._counts: dict[str, Count] = {}

    def counts(self) -> dict[str, Count]:
        """Return a snapshot of the latest counts keyed by host."""
        with self._lock:
            return dict(self._counts)

    def fetch_and_save_counts(self) -> None:
        """Fetch fresh counts and store them; on failure mark the pinger as errored."""
        with self._lock:
            try:
                counts = fetch_counts(
                    self.endpoints_fn,
                    self.counts_fn,
                    self.namespace,
                    self.service_name,
                    self.admin_port,
                )
            except Exception:
                self._log.error("getting request counts", exc_info=True)
                self.status = PingerStatus.ERROR
                raise
            self.status = PingerStatus.ACTIVE
            self._counts = counts
            self.last_ping_time = time.time()

    def _refresh(self, message: str) -> None:
        try:
            self.fetch_and_save_counts()
        except Exception:
            self._log.error(message, exc_info=True)

    def run(
        self,
        stop_event: threading.Event,
        tick_interval: float,
        endpoint_events: "queue.Queue[object] | None" = None,
    ) -> None:
        """Refresh counts every ``tick_interval`` seconds and on each endpoint event.

        Returns once ``stop_event`` is set, leaving the status at ERROR.
        """
        deadline = time.monotonic() + tick_interval
        while not stop_event.is_set():
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                self._refresh("getting request counts")
                now = time.monotonic()
                while deadline <= now:
                    deadline += tick_interval
                continue
            if endpoint_events is None:
                stop_event.wait(remaining)
                continue
            try:
                endpoint_events.get(timeout=min(remaining, _EVENT_POLL_SECONDS))
            except queue.Empty:
                continue
            self._refresh("getting request counts after interceptor endpoints event")
        self._log.error("stop requested, stopping queue pinger loop")
        self.status = PingerStatus.ERROR