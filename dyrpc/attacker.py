import asyncio
import logging
import random
from collections import Counter
from typing import Dict, List, NamedTuple, Optional, Set, Tuple

from . import items as it
from .config import ModelConfig
from .errors import IllegalAction, StructuralFault
from .items import Data, Hmac, Item, Key, Pair
from .principals import PrincipalRegistry
from .world import World

"""
attacker.py — the Dolev-Yao attacker.

Each action is one generative rule of Pub:
- leak_new_key / leak   bad principals publish their keys
- publish_data          anyone can publish any data value
- combine               pair up two known items
- hash                  hmac a known item under a known key
- decompose             split a known pair into its halves
- replay / drop         duplicate or lose traffic

"Known" means seen on the wire: the attacker owns the network, so it sees
every item ever sent (World.history) and may reuse any of them. Operands it
never saw are refused with IllegalAction; that's what keeps it honest.

step() picks a random action; run() loops. plan_derivation() goes the other
way: given a public item, it works out a finite action sequence that
produces it (or None when the attacker can't get there).
"""

log = logging.getLogger(__name__)

ACTIONS = ("leak", "data", "combine", "hash", "decompose", "replay", "drop")


class Action(NamedTuple):
    name: str
    args: Tuple


class AttackerNode:
    def __init__(
        self,
        world: World,
        registry: PrincipalRegistry,
        config: ModelConfig,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.world = world
        self.registry = registry
        self.config = config
        self.rng = rng or random.Random(config.seed)
        self.stats: Counter = Counter()
        self._stopping = asyncio.Event()

    # -----------------
    # Primitive moves
    # -----------------

    def _require_known(self, *items: Item) -> None:
        for item in items:
            if not self.world.has_seen(item):
                raise IllegalAction(f"attacker never observed {item!r}")

    def _publish(self, item: Item) -> Item:
        self.world.send(item)
        return item

    def create_principal(self) -> int:
        """Attackers are arbitrary principals too."""
        return self.registry.create_principal()

    def leak_new_key(self, principal_id: int) -> Key:
        """Fresh key for a principal whose key may leak, then publish it."""
        key = self.registry.create_key(
            principal_id,
            guard=lambda serial: self.config.key_compromised(principal_id, serial),
        )
        log.info("attacker leaks fresh key %s:%s", key.creator, key.serial)
        return self._publish(key)

    def leak(self, key: Item) -> Key:
        """Publish an existing key handed over by a corrupted principal."""
        key = it.check_is_key(key)
        if not self.config.key_compromised(key.creator, key.serial):
            raise IllegalAction(f"key {key.creator}:{key.serial} belongs to honest principals")
        log.info("attacker leaks key %s:%s", key.creator, key.serial)
        return self._publish(key)

    def publish_data(self, value: int) -> Data:
        return self._publish(it.create_data(value))

    def combine(self, first: Item, second: Item) -> Pair:
        self._require_known(first, second)
        return self._publish(it.create_pair(first, second, self.world.max_item_depth))

    def hash(self, key: Item, payload: Item) -> Hmac:
        self._require_known(key, payload)
        key = it.check_is_key(key)
        return self._publish(it.hmac(key, payload, self.world.max_item_depth))

    def decompose(self, pair: Item) -> Tuple[Item, Item]:
        self._require_known(pair)
        first, second = it.pair_first(pair), it.pair_second(pair)
        self._publish(first)
        self._publish(second)
        return first, second

    def replay(self, item: Item) -> Item:
        self._require_known(item)
        return self._publish(item)

    def drop(self, item: Optional[Item] = None) -> Optional[Item]:
        return self.world.drop(item)

    # --------------------
    # Random exploration
    # --------------------

    def step(self) -> Optional[str]:
        """
        One random action. Returns its name, or None if it aborted (wrong
        variant, nothing to work with, illegal leak). Aborts never stop
        the process.
        """
        action = self.rng.choice(ACTIONS)
        try:
            self._random_action(action)
        except (StructuralFault, IllegalAction) as exc:
            self.stats["aborted"] += 1
            log.debug("attacker %s aborted: %s", action, exc)
            return None
        self.stats[action] += 1
        return action

    def _random_action(self, action: str) -> None:
        known = self.world.observe()
        if action == "data":
            self.publish_data(self.rng.choice(self.config.data_values))
        elif action == "leak":
            leakable = [
                p for p in self.registry.ids()
                if self.config.key_compromised(p, self.registry.next_serial(p))
            ]
            if not leakable:
                raise IllegalAction("no corrupted principal to leak from")
            self.leak_new_key(self.rng.choice(leakable))
        elif not known:
            raise IllegalAction("nothing observed yet")
        elif action == "combine":
            self.combine(self.rng.choice(known), self.rng.choice(known))
        elif action == "hash":
            keys = [i for i in known if isinstance(i, Key)]
            # mostly pick a real key; sometimes try garbage and get TypeMismatch
            pool = keys if keys and self.rng.random() < 0.75 else known
            self.hash(self.rng.choice(pool), self.rng.choice(known))
        elif action == "decompose":
            pairs = [i for i in known if isinstance(i, Pair)]
            self.decompose(self.rng.choice(pairs or known))
        elif action == "replay":
            self.replay(self.rng.choice(known))
        elif action == "drop":
            self.drop()

    async def run(self, steps: Optional[int] = None) -> Counter:
        """Loop step() until stop(), cancellation, or `steps` steps."""
        done = 0
        while not self._stopping.is_set():
            if steps is not None and done >= steps:
                break
            self.step()
            done += 1
            await asyncio.sleep(0)  # let the honest roles run
        return self.stats

    def stop(self) -> None:
        self._stopping.set()

    # ------------------------------------
    # Planning: how to reach a given item
    # ------------------------------------

    def plan_derivation(self, target: Item) -> Optional[List[Action]]:
        """
        Action sequence that makes `target` appear on the wire, starting
        from what has been observed so far. None if unreachable.
        """
        known: Set[Item] = set(self.world.observe())
        if target in known:
            return [Action("replay", (target,))]
        parents = _decomposition_parents(known)
        serials = {p: self.registry.next_serial(p) for p in self.registry.ids()}
        plan: List[Action] = []
        if not self._plan(target, known, parents, serials, plan):
            return None
        return plan

    def _plan(self, item, known, parents, serials, plan) -> bool:
        if item in known:
            return True
        if item in parents:
            parent = parents[item]
            if not self._plan(parent, known, parents, serials, plan):
                return False
            plan.append(Action("decompose", (parent,)))
            known.update((parent.first, parent.second))
            return True

        if isinstance(item, Data):
            plan.append(Action("publish_data", (item.value,)))
        elif isinstance(item, Pair):
            if not (self._plan(item.first, known, parents, serials, plan)
                    and self._plan(item.second, known, parents, serials, plan)):
                return False
            plan.append(Action("combine", (item.first, item.second)))
        elif isinstance(item, Hmac):
            key = Key(item.key_creator, item.key_serial)
            if not (self._plan(key, known, parents, serials, plan)
                    and self._plan(item.body, known, parents, serials, plan)):
                return False
            plan.append(Action("hash", (key, item.body)))
        elif isinstance(item, Key):
            nxt = serials.get(item.creator)
            if nxt is None:
                return False
            if item.serial < nxt:
                # already issued: only its corrupted holder can hand it over
                if not self.config.key_compromised(item.creator, item.serial):
                    return False
                plan.append(Action("leak", (item,)))
                known.add(item)
                return True
            # fresh keys leak in serial order, each leak legal
            leaks = range(nxt, item.serial + 1)
            if not all(self.config.key_compromised(item.creator, s) for s in leaks):
                return False
            for s in leaks:
                plan.append(Action("leak_new_key", (item.creator,)))
                known.add(Key(item.creator, s))
            serials[item.creator] = item.serial + 1
        else:
            return False
        known.add(item)
        return True

    def execute(self, plan: List[Action]) -> None:
        for action in plan:
            getattr(self, action.name)(*action.args)
            self.stats[action.name] += 1


def _decomposition_parents(known: Set[Item]) -> Dict[Item, Pair]:
    """child -> a pair it can be split out of, closed under repeated splitting."""
    parents: Dict[Item, Pair] = {}
    todo = [i for i in known if isinstance(i, Pair)]
    while todo:
        pair = todo.pop()
        for child in (pair.first, pair.second):
            if child in known or child in parents:
                continue
            parents[child] = pair
            if isinstance(child, Pair):
                todo.append(child)
    return parents
