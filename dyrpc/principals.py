import logging
import threading
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from .errors import IllegalAction
from .items import Key

"""
principals.py — principal ids and per-principal key counters.

Serials issued to principal P are exactly 0..key_count-1, each issued once.
Issuing is a compare-and-increment under a lock, so concurrent create_key()
calls never hand out the same serial twice.
"""

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Principal:
    """Snapshot of a registry entry."""
    id: int
    key_count: int


class PrincipalRegistry:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._key_counts: Dict[int, int] = {}

    def create_principal(self, principal_id: Optional[int] = None) -> int:
        """
        Register a principal. With no id, allocate the next unused one.
        Asking for an id that already exists is a setup bug (ValueError).
        """
        with self._lock:
            if principal_id is None:
                principal_id = max(self._key_counts, default=-1) + 1
            elif principal_id in self._key_counts:
                raise ValueError(f"principal {principal_id} already exists")
            self._key_counts[principal_id] = 0
        log.debug("registered principal %s", principal_id)
        return principal_id

    def get(self, principal_id: int) -> Principal:
        """Will KeyError if the principal was never registered."""
        with self._lock:
            return Principal(principal_id, self._key_counts[principal_id])

    def __contains__(self, principal_id: int) -> bool:
        with self._lock:
            return principal_id in self._key_counts

    def ids(self):
        with self._lock:
            return sorted(self._key_counts)

    def next_serial(self, principal_id: int) -> int:
        with self._lock:
            return self._key_counts[principal_id]

    def create_key(
        self,
        principal_id: int,
        guard: Optional[Callable[[int], bool]] = None,
    ) -> Key:
        """
        Issue Key(principal_id, old_count) and bump the counter.

        `guard(serial)` runs under the lock against the serial about to be
        issued; if it says no, nothing is issued and IllegalAction is raised.
        """
        with self._lock:
            serial = self._key_counts[principal_id]
            if guard is not None and not guard(serial):
                raise IllegalAction(f"key {principal_id}:{serial} may not be issued here")
            self._key_counts[principal_id] = serial + 1
        return Key(principal_id, serial)
