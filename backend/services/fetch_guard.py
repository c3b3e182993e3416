"""
Stale-response guard for views that reload when their inputs change.

Each load of a view takes a ticket. When the inputs change again before the
earlier load finishes, only the result of the newest ticket is applied.
"""

import itertools
import threading
from dataclasses import dataclass
from typing import Any, Callable, Optional


@dataclass(frozen=True)
class FetchTicket:
    view: str
    params: tuple
    serial: int


def _freeze(params: Optional[dict]) -> tuple:
    if not params:
        return ()
    return tuple(sorted((k, repr(v)) for k, v in params.items()))


class FetchGuard:
    """Tracks the latest ticket per view."""

    def __init__(self):
        self._serials = itertools.count(1)
        self._latest: dict[str, int] = {}
        self._lock = threading.Lock()

    def begin(self, view: str, params: Optional[dict] = None) -> FetchTicket:
        """Start a load for a view; any earlier ticket for it becomes stale."""
        with self._lock:
            ticket = FetchTicket(view, _freeze(params), next(self._serials))
            self._latest[view] = ticket.serial
        return ticket

    def is_current(self, ticket: FetchTicket) -> bool:
        with self._lock:
            return self._latest.get(ticket.view) == ticket.serial

    def apply(self, ticket: FetchTicket, result: Any, callback: Optional[Callable[[Any], None]] = None) -> bool:
        """
        Hand a finished load's result to the view if its ticket is still current.

        Returns:
            True if the result was applied, False if it was discarded as stale
        """
        if not self.is_current(ticket):
            print(f"[Fetch] Discarded stale result for {ticket.view} (#{ticket.serial})")
            return False
        if callback is not None:
            callback(result)
        return True
