"""Data models for natstop."""

from dataclasses import dataclass, field

from natstop.sorting import SortKey, resolve_sort_key


@dataclass(slots=True, frozen=True)
class ServerVitals:
    """Server-wide statistics from the monitoring endpoint."""

    version: str = ""
    uptime: str = ""
    cpu: float = 0.0  # Percent
    mem: int = 0  # Bytes
    slow_consumers: int = 0
    in_msgs: int = 0
    out_msgs: int = 0
    in_bytes: int = 0
    out_bytes: int = 0


@dataclass(slots=True, frozen=True)
class RateSet:
    """Per-second deltas between two consecutive snapshots."""

    in_msgs_rate: float = 0.0
    out_msgs_rate: float = 0.0
    in_bytes_rate: float = 0.0
    out_bytes_rate: float = 0.0


@dataclass(slots=True, frozen=True)
class ConnectionRecord:
    """Immutable snapshot of one client connection."""

    cid: int
    ip: str
    port: int
    name: str = ""
    num_subs: int = 0
    pending_bytes: int = 0
    in_msgs: int = 0
    out_msgs: int = 0
    in_bytes: int = 0
    out_bytes: int = 0
    lang: str = ""
    version: str = ""
    uptime: str = ""
    last_activity: str = ""
    subscriptions: tuple[str, ...] = ()

    @property
    def host(self) -> str:
        return f"{self.ip}:{self.port}"


@dataclass(slots=True, frozen=True)
class Snapshot:
    """One complete read of server vitals and the connection list."""

    vitals: ServerVitals = field(default_factory=ServerVitals)
    num_connections: int = 0
    connections: tuple[ConnectionRecord, ...] = ()
    rates: RateSet = field(default_factory=RateSet)
    taken_at: float = 0.0  # time.monotonic() of the poll

    @classmethod
    def empty(cls) -> "Snapshot":
        """Zero-value placeholder shown before the first poll completes."""
        return cls()


@dataclass(slots=True)
class DashboardConfig:
    """Display and request settings, mutated only on the UI event loop."""

    sample_limit: int = 1024
    refresh_interval: float = 1.0
    sort_key: SortKey = SortKey.CID
    display_subs: bool = False

    def set_sort_token(self, token: str) -> SortKey:
        """
        Switch the sort key to the one named by ``token``.

        The current key is left untouched when the token is unknown.

        Raises:
            UnknownSortKeyError: if the token is not recognized.
        """
        self.sort_key = resolve_sort_key(token)
        return self.sort_key
