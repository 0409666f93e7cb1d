import asyncio
import logging
from typing import Callable, Optional, Tuple

from . import messages as m
from .config import ModelConfig
from .errors import (
    ConfigError,
    ItemTooDeep,
    ProtocolFault,
    ProtocolViolation,
    PubViolation,
    StructuralFault,
)
from .events import EventLog
from .items import Item, Key
from .world import World

"""
node.py — the two honest roles.

ClientNode: send one authenticated request, wait for the authenticated
response, and only hand back a `resp` that the server really produced for
*this* request.

ServerNode: long-running loop. Anything that fails to open (bad hash, wrong
tag, malformed item) is dropped and the loop keeps going; one junk datagram
must never take the service down.

Both sides share one secret Key item: the client created it and the setup
config says it's shared with the server.
"""

log = logging.getLogger(__name__)

ComputeResponse = Callable[[Item], Item]


def _check_binding(config: ModelConfig, key: Item, server_id: int) -> Key:
    if not isinstance(key, Key):
        raise ConfigError(f"expected a Key item, got {type(key).__name__}")
    peer = config.shared_with(key.creator, key.serial)
    if peer != server_id:
        raise ConfigError(
            f"key {key.creator}:{key.serial} is shared with {peer}, not {server_id}"
        )
    return key


class ClientNode:
    """
    Client side of the RPC.

    The caller must have logged Request(self, server, req) before call();
    that's the app saying "yes, I meant to send this". issue() does both.
    """
    def __init__(self, world: World, events: EventLog, config: ModelConfig, key: Key) -> None:
        if not isinstance(key, Key):
            raise ConfigError(f"expected a Key item, got {type(key).__name__}")
        self.world = world
        self.events = events
        self.config = config
        self.key = key
        self.node_id = key.creator

    async def call(self, server_id: int, request: Item) -> Item:
        """
        One exchange. Raises AuthenticationFailure / ProtocolViolation /
        TypeMismatch if the reply doesn't check out; the call is over either way.
        """
        _check_binding(self.config, self.key, server_id)

        # 1) Pair(hmac(key, Pair(Data(0), req)), Pair(Data(0), req))
        self.world.send(m.request_message(self.key, request, self.world.max_item_depth))
        log.debug("[client %s] request sent to %s: %r", self.node_id, server_id, request)

        # 2-4) authenticate, check the tag, check it answers *our* request
        reply = await self.world.receive()
        echoed, resp = m.open_response(reply, self.key)
        if echoed != request:
            raise ProtocolViolation("response correlates to a different request")

        log.debug("[client %s] response from %s: %r", self.node_id, server_id, resp)
        return resp

    async def issue(self, server_id: int, request: Item) -> Item:
        """Log Request(self, server, request), then call()."""
        _check_binding(self.config, self.key, server_id)
        self.events.log_request(self.node_id, server_id, request)
        return await self.call(server_id, request)


class ServerNode:
    """
    Server side of the RPC.

    Loop invariant: world, log and config are the shared ones and `key` is
    the same Key for every iteration, with shared_with(owner, serial) ==
    server_id. That is checked once here and nothing in the loop can break
    it, so each iteration starts from the same footing.
    """
    def __init__(
        self,
        server_id: int,
        world: World,
        events: EventLog,
        config: ModelConfig,
        key: Key,
        compute_response: ComputeResponse,
    ) -> None:
        self.server_id = server_id
        self.world = world
        self.events = events
        self.config = config
        self.key = _check_binding(config, key, server_id)
        self.owner = key.creator
        self.compute_response = compute_response
        self.handled = 0
        self.dropped = 0
        self._stopping = asyncio.Event()

    async def serve_once(self) -> Optional[Tuple[Item, Item]]:
        """
        Handle one datagram. Returns (request, response) if it was served,
        None if it was dropped.
        """
        datagram = await self.world.receive()
        try:
            request = m.open_request(datagram, self.key)
        except (StructuralFault, ProtocolFault) as exc:
            self.dropped += 1
            log.info("[server %s] dropped datagram: %s", self.server_id, exc)
            return None

        # Authenticated under an uncorrupted key => Request(owner, server, request)
        # is already logged (that's what Pub guarantees). No re-check needed.
        response = self.compute_response(request)
        if not self.world.is_public(response):
            # The app handed back something that can't go on the wire.
            raise PubViolation(f"compute_response returned non-public item {response!r}")

        try:
            reply = m.response_message(self.key, request, response, self.world.max_item_depth)
        except ItemTooDeep as exc:
            # request fit, the echoed reply doesn't; nothing logged, nothing sent
            self.dropped += 1
            log.info("[server %s] dropped datagram, reply too deep: %s", self.server_id, exc)
            return None

        self.events.log_response(self.owner, self.server_id, request, response)
        self.world.send(reply)
        self.handled += 1
        log.debug("[server %s] answered %r with %r", self.server_id, request, response)
        return request, response

    async def serve(self, max_datagrams: Optional[int] = None) -> None:
        """
        Serve until stop() (checked between iterations), cancellation, or
        `max_datagrams` datagrams have been taken off the wire.
        """
        seen = 0
        while not self._stopping.is_set():
            if max_datagrams is not None and seen >= max_datagrams:
                break
            await self.serve_once()
            seen += 1
        log.info("[server %s] stopped (handled=%d dropped=%d)",
                 self.server_id, self.handled, self.dropped)

    def stop(self) -> None:
        self._stopping.set()
