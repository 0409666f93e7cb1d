from typing import Set

from .config import ModelConfig
from .errors import TypeMismatch
from .events import EventLog
from .items import ITEM_TYPES, Data, Hmac, Item, Key, Pair

"""
pub.py — which items may legally be public.

    Pub(Key(o, k))        = bad(o) or bad(shared_with(o, k))
    Pub(Data(_))          = True
    Pub(Hmac(c, k, body)) = bad(c) or bad(shared_with(c, k))
                            or body == Pair(Data(0), req)
                                   and Request(c, shared_with(c, k), req) logged
                            or body == Pair(Data(1), Pair(req, resp))
                                   and Response(c, shared_with(c, k), req, resp) logged
    Pub(Pair(a, b))       = Pub(a) and Pub(b)

Weak enough that honest sends and everything the attacker can build pass,
strong enough that receiving a tagged message under an uncorrupted key
means the matching event was logged.
"""

REQUEST_TAG = 0
RESPONSE_TAG = 1


class PubPredicate:
    """
    Pub over a fixed config and a (growing) event log.

    Pub is monotone: the config never changes and the log only grows, so an
    item that was public once stays public. Positive answers are cached.
    """

    def __init__(self, config: ModelConfig, events: EventLog) -> None:
        self.config = config
        self.events = events
        self._public: Set[Item] = set()

    def __call__(self, item: Item) -> bool:
        if not isinstance(item, ITEM_TYPES):
            raise TypeMismatch(f"not an item: {type(item).__name__}")
        if item in self._public:
            return True
        result = self._check(item)
        if result:
            self._public.add(item)
        return result

    def _check(self, item: Item) -> bool:
        if isinstance(item, Key):
            return self.config.key_compromised(item.creator, item.serial)
        if isinstance(item, Data):
            return True
        if isinstance(item, Hmac):
            if self.config.key_compromised(item.key_creator, item.key_serial):
                return True
            return self.authenticated_event_logged(item)
        if isinstance(item, Pair):
            return self(item.first) and self(item.second)
        raise TypeMismatch(f"not an item: {type(item).__name__}")

    def authenticated_event_logged(self, item: Hmac) -> bool:
        """The tagged-body half of the Hmac case."""
        body = item.body
        if not isinstance(body, Pair) or not isinstance(body.first, Data):
            return False
        client = item.key_creator
        server = self.config.shared_with(client, item.key_serial)
        tag = body.first.value
        if tag == REQUEST_TAG:
            return self.events.has_request(client, server, body.second)
        if tag == RESPONSE_TAG:
            reqresp = body.second
            if not isinstance(reqresp, Pair):
                return False
            return self.events.has_response(client, server, reqresp.first, reqresp.second)
        return False
