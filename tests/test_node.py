"""Client and server roles, honest runs and hand-crafted bad traffic."""

import asyncio

import pytest

from dyrpc import messages as m
from dyrpc.config import ModelConfig
from dyrpc.errors import (
    AuthenticationFailure,
    ConfigError,
    ItemTooDeep,
    ProtocolViolation,
    PubViolation,
    TypeMismatch,
)
from dyrpc.events import Request, Response
from dyrpc.items import Data, Key, Pair
from dyrpc.run_model import ProtocolModel, run_exchange

from .conftest import CLIENT, MALLORY, SERVER


def echo_plus_57(req):
    return Data(req.value + 57)


def nested(depth):
    """Data(0) wrapped in pairs until it is `depth` levels deep."""
    item = Data(0)
    while item.depth < depth:
        item = Pair(Data(0), item)
    return item


class TestIntegrityScenario:
    @pytest.mark.asyncio
    async def test_honest_round_trip(self, model, client_key):
        resp = await run_exchange(model, client_key, SERVER, Data(42), lambda r: Data(99))
        assert resp == Data(99)
        assert model.events.count(Response(CLIENT, SERVER, Data(42), Data(99))) == 1
        assert model.events.records() == (
            Request(CLIENT, SERVER, Data(42)),
            Response(CLIENT, SERVER, Data(42), Data(99)),
        )
        assert model.pub_violations() == []

    @pytest.mark.asyncio
    async def test_structured_request(self, model, client_key):
        req = Pair(Data(1), Pair(Data(2), Data(3)))
        resp = await run_exchange(model, client_key, SERVER, req, lambda r: Pair(r, Data(0)))
        assert resp == Pair(req, Data(0))


class TestClient:
    async def _park_client(self, model, key, request):
        """Start a call; a parked sniffer takes the request so the client can't grab it back."""
        sniffer = asyncio.create_task(model.world.receive())
        await asyncio.sleep(0)
        task = asyncio.create_task(model.client(key).call(SERVER, request))
        await asyncio.sleep(0)
        sent = await sniffer
        assert not task.done()
        assert sent == m.request_message(key, request)
        return task, sent

    @pytest.mark.asyncio
    async def test_unlogged_request_cannot_be_sent(self, model, client_key):
        with pytest.raises(PubViolation):
            await model.client(client_key).call(SERVER, Data(42))

    @pytest.mark.asyncio
    async def test_wrong_server_for_key(self, model, client_key):
        with pytest.raises(ConfigError):
            await model.client(client_key).call(MALLORY, Data(42))

    @pytest.mark.asyncio
    async def test_issue_checks_binding_before_logging(self, model, client_key):
        with pytest.raises(ConfigError):
            await model.client(client_key).issue(MALLORY, Data(42))
        assert len(model.events) == 0

    def test_needs_key_item(self, model):
        with pytest.raises(ConfigError):
            model.client(Data(1))

    @pytest.mark.asyncio
    async def test_rejects_response_to_other_request(self, model, client_key):
        model.events.log_request(CLIENT, SERVER, Data(42))
        model.events.log_request(CLIENT, SERVER, Data(7))
        model.events.log_response(CLIENT, SERVER, Data(7), Data(70))
        task, _ = await self._park_client(model, client_key, Data(42))
        model.world.send(m.response_message(client_key, Data(7), Data(70)))
        with pytest.raises(ProtocolViolation):
            await task

    @pytest.mark.asyncio
    async def test_rejects_reflected_request(self, model, client_key):
        model.events.log_request(CLIENT, SERVER, Data(42))
        task, sent = await self._park_client(model, client_key, Data(42))
        model.world.send(sent)
        with pytest.raises(ProtocolViolation):
            await task

    @pytest.mark.asyncio
    async def test_rejects_other_key(self, model, client_key):
        model.events.log_request(CLIENT, SERVER, Data(42))
        task, _ = await self._park_client(model, client_key, Data(42))
        # Mallory's key is public; anything hashed under it is too.
        model.world.send(m.response_message(Key(MALLORY, 0), Data(42), Data(99)))
        with pytest.raises(AuthenticationFailure):
            await task

    @pytest.mark.asyncio
    async def test_rejects_malformed(self, model, client_key):
        model.events.log_request(CLIENT, SERVER, Data(42))
        task, _ = await self._park_client(model, client_key, Data(42))
        model.world.send(Data(5))
        with pytest.raises(TypeMismatch):
            await task


class TestServer:
    def test_binding_checked_up_front(self, model, client_key):
        with pytest.raises(ConfigError):
            model.server(MALLORY, client_key, echo_plus_57)
        with pytest.raises(ConfigError):
            model.server(SERVER, Data(0), echo_plus_57)

    @pytest.mark.asyncio
    async def test_junk_is_dropped_and_loop_continues(self, model, client_key):
        server = model.server(SERVER, client_key, echo_plus_57)
        model.events.log_request(CLIENT, SERVER, Data(1))
        model.world.send(Data(1))
        model.world.send(Pair(Data(0), Data(0)))
        model.world.send(m.response_message(Key(MALLORY, 0), Data(1), Data(1)))
        model.world.send(m.request_message(client_key, Data(1)))

        await server.serve(max_datagrams=4)

        assert (server.handled, server.dropped) == (1, 3)
        assert model.events.has_response(CLIENT, SERVER, Data(1), Data(58))
        assert model.world.has_seen(m.response_message(client_key, Data(1), Data(58)))

    @pytest.mark.asyncio
    async def test_response_tag_is_not_a_request(self, model, client_key):
        server = model.server(SERVER, client_key, echo_plus_57)
        model.events.log_request(CLIENT, SERVER, Data(1))
        model.events.log_response(CLIENT, SERVER, Data(1), Data(2))
        model.world.send(m.response_message(client_key, Data(1), Data(2)))
        assert await server.serve_once() is None
        assert server.dropped == 1

    @pytest.mark.asyncio
    async def test_non_public_response_is_a_bug(self, model, client_key):
        secret = Key(CLIENT, 0)
        server = model.server(SERVER, client_key, lambda r: secret)
        model.events.log_request(CLIENT, SERVER, Data(1))
        model.world.send(m.request_message(client_key, Data(1)))
        with pytest.raises(PubViolation):
            await server.serve_once()
        assert not model.events.has_response(CLIENT, SERVER, Data(1), secret)

    @pytest.mark.asyncio
    async def test_stop_is_checked_between_iterations(self, model, client_key):
        server = model.server(SERVER, client_key, echo_plus_57)
        task = asyncio.create_task(server.serve())
        await asyncio.sleep(0)
        server.stop()
        assert not task.done()  # parked on receive
        model.events.log_request(CLIENT, SERVER, Data(3))
        model.world.send(m.request_message(client_key, Data(3)))
        await asyncio.wait_for(task, 1)
        assert server.handled == 1

    @pytest.mark.asyncio
    async def test_cancel_while_parked(self, model, client_key):
        server = model.server(SERVER, client_key, echo_plus_57)
        task = asyncio.create_task(server.serve())
        await asyncio.sleep(0)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task


class TestDepthLimit:
    """A request that fits but whose echoed reply would not."""

    @pytest.fixture
    def small_model(self):
        model = ProtocolModel(ModelConfig(shared_keys={(CLIENT, 0): SERVER}, max_item_depth=8))
        model.add_principal(CLIENT)
        model.add_principal(SERVER)
        return model

    @pytest.mark.asyncio
    async def test_reply_too_deep_is_dropped_and_loop_goes_on(self, small_model):
        model = small_model
        key = model.new_key(CLIENT)
        server = model.server(SERVER, key, lambda r: Data(1))
        deep = nested(5)

        model.events.log_request(CLIENT, SERVER, deep)
        msg = m.request_message(key, deep, model.config.max_item_depth)
        assert msg.depth == 8
        model.world.send(msg)

        await server.serve(max_datagrams=1)  # returns normally
        assert (server.handled, server.dropped) == (0, 1)
        assert not model.events.has_response(CLIENT, SERVER, deep, Data(1))
        assert model.world.pending() == ()

        model.events.log_request(CLIENT, SERVER, Data(3))
        model.world.send(m.request_message(key, Data(3)))
        await server.serve(max_datagrams=1)
        assert server.handled == 1
        assert model.events.has_response(CLIENT, SERVER, Data(3), Data(1))

    def test_message_helpers_honour_configured_bound(self, small_model):
        key = small_model.new_key(CLIENT)
        with pytest.raises(ItemTooDeep):
            m.request_message(key, nested(6), small_model.config.max_item_depth)
        with pytest.raises(ItemTooDeep):
            m.response_message(key, nested(5), Data(1), small_model.config.max_item_depth)
