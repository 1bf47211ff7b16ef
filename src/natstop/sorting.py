"""Sort keys for the connection list."""

from __future__ import annotations

from collections.abc import Iterable
from enum import Enum
from typing import TYPE_CHECKING

from natstop.errors import UnknownSortKeyError

if TYPE_CHECKING:
    from natstop.models import ConnectionRecord


class SortKey(Enum):
    """
    Sort keys for the connection table.

    The value is the token the monitoring endpoint accepts as its ``sort``
    query parameter, so the same member drives both the request and the
    local ordering.
    """

    CID = "cid"
    SUBS = "subs"
    PENDING = "pending"
    MSGS_TO = "msgs_to"
    MSGS_FROM = "msgs_from"
    BYTES_TO = "bytes_to"
    BYTES_FROM = "bytes_from"

    @property
    def token(self) -> str:
        return self.value

    @property
    def attribute(self) -> str:
        """Name of the ConnectionRecord field this key orders by."""
        return _ATTRIBUTES[self]

    @property
    def descending(self) -> bool:
        """Busiest first for counters, ascending for the connection id."""
        return self is not SortKey.CID

    def sort(self, records: Iterable[ConnectionRecord]) -> list[ConnectionRecord]:
        """Return a new list ordered by this key; ties keep their input order."""
        attribute = self.attribute
        return sorted(records, key=lambda r: getattr(r, attribute), reverse=self.descending)


_ATTRIBUTES = {
    SortKey.CID: "cid",
    SortKey.SUBS: "num_subs",
    SortKey.PENDING: "pending_bytes",
    SortKey.MSGS_TO: "out_msgs",
    SortKey.MSGS_FROM: "in_msgs",
    SortKey.BYTES_TO: "out_bytes",
    SortKey.BYTES_FROM: "in_bytes",
}


def resolve_sort_key(token: str) -> SortKey:
    """
    Resolve a wire token to its SortKey.

    Raises:
        UnknownSortKeyError: if the token is not recognized.
    """
    try:
        return SortKey(token)
    except ValueError:
        raise UnknownSortKeyError(token) from None


def sort_tokens() -> list[str]:
    """All recognized tokens, in display order."""
    return [key.token for key in SortKey]
