"""Polling engine: fetches server and connection stats from the monitoring endpoint."""

import logging
import ssl
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import httpx

from natstop.errors import MetricsSourceError
from natstop.models import ConnectionRecord, RateSet, ServerVitals, Snapshot
from natstop.sorting import SortKey

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class RequestParams:
    """What the next poll should ask the server for."""

    limit: int
    sort_key: SortKey
    subs: bool = False


@dataclass(slots=True, frozen=True)
class PollFailure:
    """A poll that produced no snapshot."""

    message: str
    consecutive: int


PollResult = Snapshot | PollFailure


class SnapshotChannel:
    """
    Thread-safe handoff holding at most one pending result.

    Publishing replaces whatever the consumer has not picked up yet, so a
    slow UI only ever sees the latest poll.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._pending: PollResult | None = None
        self._dropped = 0

    @property
    def dropped(self) -> int:
        """Number of results overwritten before they were consumed."""
        return self._dropped

    def publish(self, result: PollResult) -> None:
        with self._lock:
            if self._pending is not None:
                self._dropped += 1
                logger.debug("Dropping unconsumed poll result")
            self._pending = result

    def take(self) -> PollResult | None:
        """Return and clear the pending result, or None if there is none."""
        with self._lock:
            result, self._pending = self._pending, None
            return result


@dataclass(slots=True)
class MetricsEndpoint:
    """Base URI of the monitoring endpoint plus optional TLS settings."""

    uri: str
    ssl_context: ssl.SSLContext | None = None
    timeout: float = 5.0


class MetricsSource:
    """
    Client for the server's ``/varz`` and ``/connz`` monitoring resources.

    Keeps the previous snapshot so each new one carries per-second rates.
    """

    def __init__(
        self,
        endpoint: MetricsEndpoint,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """
        Initialize the MetricsSource.

        Args:
            endpoint: Where to poll and how to authenticate.
            transport: Optional httpx transport, used by tests.
        """
        verify: ssl.SSLContext | bool = endpoint.ssl_context or True
        self._client = httpx.Client(
            base_url=endpoint.uri,
            timeout=endpoint.timeout,
            verify=verify,
            transport=transport,
        )
        self._previous: Snapshot | None = None

    @property
    def is_closed(self) -> bool:
        return self._client.is_closed

    def close(self) -> None:
        self._client.close()

    def fetch(self, params: RequestParams) -> Snapshot:
        """
        Poll both resources and build a Snapshot.

        Raises:
            MetricsSourceError: on any transport, HTTP status or decoding error.
        """
        query: dict[str, Any] = {"limit": params.limit, "sort": params.sort_key.token}
        if params.subs:
            query["subs"] = 1
        try:
            varz = self._get_json("/varz")
            connz = self._get_json("/connz", query)
        except httpx.HTTPError as e:
            raise MetricsSourceError(f"could not get stats from server: {e}") from e
        except ValueError as e:
            raise MetricsSourceError(f"invalid response from server: {e}") from e

        snapshot = build_snapshot(varz, connz, self._previous, taken_at=time.monotonic())
        self._previous = snapshot
        return snapshot

    def _get_json(self, path: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        response = self._client.get(path, params=params)
        response.raise_for_status()
        data = response.json()
        if not isinstance(data, dict):
            raise ValueError(f"{path} did not return an object")
        return data


def _parse_vitals(varz: dict[str, Any]) -> ServerVitals:
    # Older servers nest the version under "info".
    version = varz.get("version") or (varz.get("info") or {}).get("version") or ""
    return ServerVitals(
        version=str(version),
        uptime=str(varz.get("uptime") or ""),
        cpu=float(varz.get("cpu") or 0.0),
        mem=int(varz.get("mem") or 0),
        slow_consumers=int(varz.get("slow_consumers") or 0),
        in_msgs=int(varz.get("in_msgs") or 0),
        out_msgs=int(varz.get("out_msgs") or 0),
        in_bytes=int(varz.get("in_bytes") or 0),
        out_bytes=int(varz.get("out_bytes") or 0),
    )


def _parse_connection(info: dict[str, Any]) -> ConnectionRecord:
    subs = info.get("subscriptions_list") or []
    return ConnectionRecord(
        cid=int(info.get("cid") or 0),
        ip=str(info.get("ip") or ""),
        port=int(info.get("port") or 0),
        name=str(info.get("name") or ""),
        num_subs=int(info.get("subscriptions") or 0),
        pending_bytes=int(info.get("pending_bytes") or 0),
        in_msgs=int(info.get("in_msgs") or 0),
        out_msgs=int(info.get("out_msgs") or 0),
        in_bytes=int(info.get("in_bytes") or 0),
        out_bytes=int(info.get("out_bytes") or 0),
        lang=str(info.get("lang") or ""),
        version=str(info.get("version") or ""),
        uptime=str(info.get("uptime") or ""),
        last_activity=str(info.get("last_activity") or ""),
        subscriptions=tuple(str(s) for s in subs),
    )


def compute_rates(current: ServerVitals, previous: Snapshot | None, elapsed: float) -> RateSet:
    """Per-second deltas of the cumulative counters; zero without a usable baseline."""
    if previous is None or elapsed <= 0:
        return RateSet()
    before = previous.vitals
    return RateSet(
        in_msgs_rate=(current.in_msgs - before.in_msgs) / elapsed,
        out_msgs_rate=(current.out_msgs - before.out_msgs) / elapsed,
        in_bytes_rate=(current.in_bytes - before.in_bytes) / elapsed,
        out_bytes_rate=(current.out_bytes - before.out_bytes) / elapsed,
    )


def build_snapshot(
    varz: dict[str, Any],
    connz: dict[str, Any],
    previous: Snapshot | None = None,
    taken_at: float = 0.0,
) -> Snapshot:
    """Build a Snapshot from decoded ``/varz`` and ``/connz`` documents."""
    try:
        vitals = _parse_vitals(varz)
        connections = tuple(_parse_connection(c) for c in connz.get("connections") or [])
        num_connections = int(connz.get("num_connections") or 0)
    except (TypeError, ValueError, AttributeError) as e:
        raise MetricsSourceError(f"malformed stats: {e}") from e

    elapsed = taken_at - previous.taken_at if previous is not None else 0.0
    return Snapshot(
        vitals=vitals,
        num_connections=num_connections,
        connections=connections,
        rates=compute_rates(vitals, previous, elapsed),
        taken_at=taken_at,
    )


class StatsMonitor:
    """
    Poller that fetches snapshots from a MetricsSource.

    Runs in a separate daemon thread and publishes each result to a
    SnapshotChannel. A failed poll is published as a PollFailure and
    retried on the next tick; it never stops the loop.
    The source is closed when the loop ends, so a stopped monitor cannot be
    restarted.
    """

    def __init__(
        self,
        source: MetricsSource,
        channel: SnapshotChannel,
        request_params: Callable[[], RequestParams],
        poll_rate: float = 1.0,
    ) -> None:
        """
        Initialize the StatsMonitor.

        Args:
            source: Where snapshots come from.
            channel: Latest-wins handoff to the UI.
            request_params: Called before every poll to read the current
                limit and sort key. The monitor never writes them.
            poll_rate: How often to poll (in seconds). Default 1.0s.
        """
        self._source = source
        self._channel = channel
        self._request_params = request_params
        self.poll_rate = poll_rate
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._failures = 0

    @property
    def poll_rate(self) -> float:
        """Get the current poll rate."""
        return self._poll_rate

    @poll_rate.setter
    def poll_rate(self, value: float) -> None:
        """Set the poll rate."""
        self._poll_rate = max(0.1, value)  # Minimum 0.1 seconds

    @property
    def is_running(self) -> bool:
        """Check if the monitor thread is running."""
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the polling thread."""
        if self.is_running:
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._poll_loop,
            daemon=True,
            name="StatsMonitor",
        )
        self._thread.start()

    def stop(self, timeout: float | None = 5.0) -> None:
        """
        Stop the polling thread.

        The source is closed by the polling thread once its last request has
        finished, or here if the thread was never started.

        Args:
            timeout: How long to wait for thread to stop (seconds). 0 returns
                without waiting.
        """
        self._stop_event.set()
        if self._thread is None:
            self._source.close()
            return
        if timeout != 0:
            self._thread.join(timeout=timeout)
        self._thread = None

    def poll_once(self) -> PollResult:
        """Run a single poll and publish its result."""
        try:
            result: PollResult = self._source.fetch(self._request_params())
            self._failures = 0
        except MetricsSourceError as e:
            self._failures += 1
            logger.warning("Poll failed (%d in a row): %s", self._failures, e)
            result = PollFailure(message=str(e), consecutive=self._failures)
        self._channel.publish(result)
        return result

    def _poll_loop(self) -> None:
        """Main polling loop running in the background thread."""
        try:
            while not self._stop_event.is_set():
                try:
                    self.poll_once()
                except Exception:
                    # Keep the loop running; the UI keeps showing the last snapshot
                    logger.exception("Unexpected error while polling")
                # Wait for poll_rate seconds or until stop is requested
                self._stop_event.wait(timeout=self._poll_rate)
        finally:
            self._source.close()
