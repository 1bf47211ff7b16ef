"""Text rendering of snapshots for the dashboard and help views."""

from natstop.models import ConnectionRecord, DashboardConfig, Snapshot
from natstop.sorting import sort_tokens

COLUMNS = (
    ("HOST", 20),
    ("CID", 8),
    ("NAME", 15),
    ("SUBS", 6),
    ("PENDING", 10),
    ("MSGS_TO", 10),
    ("MSGS_FROM", 10),
    ("BYTES_TO", 10),
    ("BYTES_FROM", 10),
    ("LANG", 7),
    ("VERSION", 7),
    ("UPTIME", 7),
    ("LAST ACTIVITY", 40),
)
SUBS_COLUMN = "SUBSCRIPTIONS"

# Separators between consecutive columns; the first four columns are
# packed tighter than the counters that follow them.
_GAPS = (" ", " ", " ", "  ", "  ", "  ", "  ", "  ", "  ", "  ", "  ", "  ")


def psize(size: float) -> str:
    """Format a byte count or counter: raw below 1024, else scaled with K/M/G/T."""
    if size < 1024:
        return f"{size:.0f}"
    for unit in ["K", "M", "G"]:
        size = size / 1024
        if size < 1024:
            return f"{size:.1f}{unit}"
    return f"{size / 1024:.1f}T"


def _join_columns(values: list[str]) -> str:
    line = "  "
    for i, ((_, width), value) in enumerate(zip(COLUMNS, values)):
        line += f"{value:<{width}}"
        if i < len(_GAPS):
            line += _GAPS[i]
    return line


def _header_block(snapshot: Snapshot) -> str:
    vitals = snapshot.vitals
    rates = snapshot.rates
    return (
        f"NATS server version {vitals.version} (uptime: {vitals.uptime})\n"
        f"Server:\n"
        f"  Load: CPU:  {vitals.cpu:.1f}%  Memory: {psize(vitals.mem)}"
        f"  Slow Consumers: {vitals.slow_consumers}\n"
        f"  In:   Msgs: {psize(vitals.in_msgs)}  Bytes: {psize(vitals.in_bytes)}"
        f"  Msgs/Sec: {rates.in_msgs_rate:.1f}  Bytes/Sec: {psize(rates.in_bytes_rate)}\n"
        f"  Out:  Msgs: {psize(vitals.out_msgs)}  Bytes: {psize(vitals.out_bytes)}"
        f"  Msgs/Sec: {rates.out_msgs_rate:.1f}  Bytes/Sec: {psize(rates.out_bytes_rate)}\n"
        f"\n"
        f"Connections: {snapshot.num_connections}\n"
    )


def format_connection(conn: ConnectionRecord, display_subs: bool = False) -> str:
    """Render a single connection row."""
    line = _join_columns(
        [
            conn.host,
            str(conn.cid),
            conn.name,
            str(conn.num_subs),
            psize(conn.pending_bytes),
            psize(conn.out_msgs),
            psize(conn.in_msgs),
            psize(conn.out_bytes),
            psize(conn.in_bytes),
            conn.lang,
            conn.version,
            conn.uptime,
            conn.last_activity,
        ]
    )
    if display_subs:
        line += ", ".join(conn.subscriptions)
    return line


def format_dashboard(snapshot: Snapshot, config: DashboardConfig) -> str:
    """
    Render the top view for a snapshot.

    Pure function: the connection list is sorted into a new list and the
    snapshot is left as it was.
    """
    header = _join_columns([name for name, _ in COLUMNS])
    if config.display_subs:
        header += f"{SUBS_COLUMN:>13}"

    lines = [_header_block(snapshot) + header]
    for conn in config.sort_key.sort(snapshot.connections):
        lines.append(format_connection(conn, config.display_subs))
    return "\n".join(lines) + "\n"


def format_help() -> str:
    """Static text of the help view."""
    options = "|".join(sort_tokens())
    return f"""
Command          Description

o<option>        Set primary sort key to <option>.

                 Option can be one of: {{{options}}}

                 This can be set in the command line too with -sort flag.

n<limit>         Set sample size of connections to request from the server.

                 This can be set in the command line as well via -n flag.
                 Note that if used in conjunction with sort, the server
                 would respect both options allowing queries like 'connection
                 with largest number of subscriptions': -n 1 -sort subs

s                Toggle displaying connection subscriptions.

q                Quit natstop.

Press any key to continue...
"""
