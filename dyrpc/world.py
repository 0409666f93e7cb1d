import asyncio
import logging
import random
from typing import Callable, List, Optional, Set, Tuple

from .errors import ItemTooDeep, PubViolation
from .items import MAX_ITEM_DEPTH, Item

"""
world.py — the shared, hostile channel.

What it models:
- send() drops an item into the world; receive() plucks an *arbitrary* one
  back out. No FIFO, no delivery guarantee, no dedup.
- Every item ever sent is kept in `history`. That's what the attacker gets to
  see (it owns the network), and what it can replay.
- Every resident item satisfies Pub. With check=True (the default) send()
  enforces that and raises PubViolation, so a bad model shows up loudly.

Concurrency: everything runs on one asyncio loop. send() never awaits, so it
is atomic; receive() only suspends while the world is empty. An item sent
while receivers are parked is handed straight to one of them.
"""

log = logging.getLogger(__name__)


class World:
    def __init__(
        self,
        pub: Callable[[Item], bool],
        rng: Optional[random.Random] = None,
        check: bool = True,
        max_item_depth: int = MAX_ITEM_DEPTH,
    ) -> None:
        self.pub = pub
        self.rng = rng or random.Random()
        self.check = check
        self.max_item_depth = max_item_depth
        self._pending: List[Item] = []
        self._history: List[Item] = []
        self._seen: Set[Item] = set()
        self._waiters: List[asyncio.Future] = []

    # ---------
    # Sending
    # ---------

    def is_public(self, item: Item) -> bool:
        return self.pub(item)

    def send(self, item: Item) -> None:
        if item.depth > self.max_item_depth:
            raise ItemTooDeep(f"item depth {item.depth} exceeds {self.max_item_depth}")
        if self.check and not self.pub(item):
            raise PubViolation(f"refusing to publish non-public item {item!r}")
        self._history.append(item)
        self._seen.add(item)

        waiters = [w for w in self._waiters if not w.done()]
        if waiters:
            fut = self.rng.choice(waiters)
            self._waiters.remove(fut)
            fut.set_result(item)
        else:
            self._pending.append(item)

    # -----------
    # Receiving
    # -----------

    def try_receive(self) -> Optional[Item]:
        """Take an arbitrary pending item, or None if the world is empty."""
        if not self._pending:
            return None
        idx = self.rng.randrange(len(self._pending))
        # swap-pop: order doesn't mean anything here anyway
        self._pending[idx], self._pending[-1] = self._pending[-1], self._pending[idx]
        return self._pending.pop()

    async def receive(self) -> Item:
        item = self.try_receive()
        if item is not None:
            return item
        fut = asyncio.get_running_loop().create_future()
        self._waiters.append(fut)
        try:
            return await fut
        finally:
            if fut in self._waiters:
                self._waiters.remove(fut)

    def drop(self, item: Optional[Item] = None) -> Optional[Item]:
        """Lose one pending copy of `item` (or an arbitrary one)."""
        if item is None:
            return self.try_receive()
        try:
            self._pending.remove(item)
        except ValueError:
            return None
        return item

    # ------------
    # Inspection
    # ------------

    def observe(self) -> Tuple[Item, ...]:
        """Everything ever sent, oldest first."""
        return tuple(self._history)

    def has_seen(self, item: Item) -> bool:
        return item in self._seen

    def pending(self) -> Tuple[Item, ...]:
        return tuple(self._pending)

    def __len__(self) -> int:
        return len(self._pending)
