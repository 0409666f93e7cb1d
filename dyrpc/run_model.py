import asyncio
import logging
import random
from typing import Callable, List, Optional

from .attacker import AttackerNode
from .config import ModelConfig
from .crypto import KeyStore, realize
from .errors import ProtocolFault, StructuralFault
from .events import EventLog
from .items import Item, Key, create_key
from .node import ClientNode, ServerNode
from .principals import PrincipalRegistry
from .pub import PubPredicate
from .world import World

"""
run_model.py — wire everything together and drive it.

ProtocolModel holds the shared state (registry, event log, world, Pub) for
one run. The runner coroutines below are thin: an honest exchange, a bounded
attacker exploration, and a mixed run with all three processes at once.

Typical use:
    model = ProtocolModel(ModelConfig(shared_keys={(1, 0): 2}))
    c, s = model.add_principal(1), model.add_principal(2)
    key = model.new_key(c)
    resp = await run_exchange(model, key, s, Data(42), lambda r: Data(99))
"""

log = logging.getLogger(__name__)


class ProtocolModel:
    def __init__(self, config: Optional[ModelConfig] = None, check: bool = True) -> None:
        self.config = config or ModelConfig()
        self.rng = random.Random(self.config.seed)
        self.registry = PrincipalRegistry()
        self.events = EventLog()
        self.pub = PubPredicate(self.config, self.events)
        self.world = World(
            self.pub,
            rng=random.Random(self.rng.random()),
            check=check,
            max_item_depth=self.config.max_item_depth,
        )
        self.keystore = KeyStore()

    # --- setup ---

    def add_principal(self, principal_id: Optional[int] = None) -> int:
        return self.registry.create_principal(principal_id)

    def new_key(self, principal_id: int) -> Key:
        return create_key(self.registry, principal_id)

    # --- roles ---

    def client(self, key: Key) -> ClientNode:
        return ClientNode(self.world, self.events, self.config, key)

    def server(self, server_id: int, key: Key, compute_response: Callable[[Item], Item]) -> ServerNode:
        return ServerNode(server_id, self.world, self.events, self.config, key, compute_response)

    def attacker(self, seed: Optional[int] = None) -> AttackerNode:
        rng = random.Random(self.rng.random() if seed is None else seed)
        return AttackerNode(self.world, self.registry, self.config, rng=rng)

    # --- checks ---

    def pub_violations(self) -> List[Item]:
        """Items on the wire that fail Pub. Always empty for a sound model."""
        return [i for i in self.world.observe() if not self.pub(i)]

    def realize(self, item: Item) -> bytes:
        return realize(self.keystore, item)


# -------------------------
# Runners (thin wrappers)
# -------------------------

async def run_exchange(
    model: ProtocolModel,
    key: Key,
    server_id: int,
    request: Item,
    compute_response: Callable[[Item], Item],
) -> Item:
    """
    One honest round trip with nobody else on the wire: the server is parked
    on receive() first, then the client issues its request.
    """
    server = model.server(server_id, key, compute_response)
    serving = asyncio.create_task(server.serve(max_datagrams=1))
    await asyncio.sleep(0)  # let the server park on receive()
    try:
        return await model.client(key).issue(server_id, request)
    finally:
        await serving


async def explore(model: ProtocolModel, steps: int, seed: Optional[int] = None) -> AttackerNode:
    """Bounded attacker exploration on its own."""
    attacker = model.attacker(seed)
    stats = await attacker.run(steps)
    log.info("exploration finished: %s", dict(stats))
    return attacker


async def run_under_attack(
    model: ProtocolModel,
    key: Key,
    server_id: int,
    request: Item,
    compute_response: Callable[[Item], Item],
    attacker_steps: int = 200,
    seed: Optional[int] = None,
    timeout: float = 1.0,
):
    """
    Client, server and attacker all on the wire at once.

    Returns the client's response, or the exception that ended its call
    (a protocol/structural fault, or asyncio.TimeoutError if the attacker
    ate the traffic). Either outcome is fine; a *wrong* response isn't.
    """
    server = model.server(server_id, key, compute_response)
    attacker = model.attacker(seed)
    serving = asyncio.create_task(server.serve())
    await asyncio.sleep(0)
    attacking = asyncio.create_task(attacker.run(attacker_steps))
    try:
        return await asyncio.wait_for(model.client(key).issue(server_id, request), timeout)
    except (ProtocolFault, StructuralFault, asyncio.TimeoutError) as exc:
        log.info("client call ended without a response: %r", exc)
        return exc
    finally:
        server.stop()
        attacker.stop()
        serving.cancel()
        await asyncio.gather(serving, attacking, return_exceptions=True)
