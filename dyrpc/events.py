import logging
import threading
from dataclasses import dataclass
from typing import List, Optional, Set, Tuple, Union

from .items import Item

"""
events.py — the append-only event log.

Honest roles record what the application actually did:
- Request(client, server, req)          the client app decided to send req
- Response(client, server, req, resp)   the server app answered req with resp

Pub reads it to decide which authenticated messages may exist; tests read
it to check integrity. Nothing is ever removed, so anything Pub once stays
Pub.
"""

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Request:
    client: int
    server: int
    req: Item


@dataclass(frozen=True)
class Response:
    client: int
    server: int
    req: Item
    resp: Item


Event = Union[Request, Response]


class EventLog:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._records: List[Event] = []
        # Indexes for the lookups Pub needs.
        self._requests: Set[Tuple[int, int, Item]] = set()
        self._responses: Set[Tuple[int, int, Item, Item]] = set()

    def log_request(self, client: int, server: int, req: Item) -> Request:
        ev = Request(client, server, req)
        with self._lock:
            self._records.append(ev)
            self._requests.add((client, server, req))
        log.debug("Request(%s, %s, %r)", client, server, req)
        return ev

    def log_response(self, client: int, server: int, req: Item, resp: Item) -> Response:
        ev = Response(client, server, req, resp)
        with self._lock:
            self._records.append(ev)
            self._responses.add((client, server, req, resp))
        log.debug("Response(%s, %s, %r, %r)", client, server, req, resp)
        return ev

    def has_request(self, client: int, server: Optional[int], req: Item) -> bool:
        if server is None:
            return False
        with self._lock:
            return (client, server, req) in self._requests

    def has_response(self, client: int, server: Optional[int], req: Item, resp: Item) -> bool:
        if server is None:
            return False
        with self._lock:
            return (client, server, req, resp) in self._responses

    def count(self, event: Event) -> int:
        """How many times exactly this record was appended."""
        with self._lock:
            return self._records.count(event)

    def records(self) -> Tuple[Event, ...]:
        with self._lock:
            return tuple(self._records)

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
