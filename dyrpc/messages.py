from typing import Tuple

from . import items as it
from .errors import ProtocolViolation
from .items import MAX_ITEM_DEPTH, Item, Key, Pair
from .pub import REQUEST_TAG, RESPONSE_TAG

"""
messages.py — the two datagram shapes and how to open them.

    request  = Pair(Hmac(key, Pair(Data(0), req)), Pair(Data(0), req))
    response = Pair(Hmac(key, Pair(Data(1), Pair(req, resp))),
                    Pair(Data(1), Pair(req, resp)))

The tag is what stops a request from being reflected back as a response
(or vice versa) under the same shared key.
"""

__all__ = [
    "REQUEST_TAG",
    "RESPONSE_TAG",
    "authenticate",
    "request_payload",
    "response_payload",
    "request_message",
    "response_message",
    "open_authenticated",
    "expect_tag",
    "open_request",
    "open_response",
]


def request_payload(req: Item, max_depth: int = MAX_ITEM_DEPTH) -> Pair:
    return it.create_pair(it.create_data(REQUEST_TAG), req, max_depth)


def response_payload(req: Item, resp: Item, max_depth: int = MAX_ITEM_DEPTH) -> Pair:
    reqresp = it.create_pair(req, resp, max_depth)
    return it.create_pair(it.create_data(RESPONSE_TAG), reqresp, max_depth)


def authenticate(key: Key, payload: Item, max_depth: int = MAX_ITEM_DEPTH) -> Pair:
    """
    Pair(hmac(key, payload), payload) — what actually goes on the wire.
    Raises ItemTooDeep if the result would not fit under `max_depth`.
    """
    return it.create_pair(it.hmac(key, payload, max_depth), payload, max_depth)


def request_message(key: Key, req: Item, max_depth: int = MAX_ITEM_DEPTH) -> Pair:
    return authenticate(key, request_payload(req, max_depth), max_depth)


def response_message(key: Key, req: Item, resp: Item, max_depth: int = MAX_ITEM_DEPTH) -> Pair:
    return authenticate(key, response_payload(req, resp, max_depth), max_depth)


def open_authenticated(message: Item, key: Key) -> Item:
    """
    Split Pair(hash, payload) and check the hash under `key`.
    Raises TypeMismatch if `message` isn't a pair, AuthenticationFailure if
    the hash doesn't match.
    """
    hash_item = it.pair_first(message)
    payload = it.pair_second(message)
    it.verify_hmac(hash_item, key, payload)
    return payload


def expect_tag(payload: Item, tag: int) -> Item:
    """Check Pair(Data(tag), rest) and return rest."""
    got = it.get_data(it.pair_first(payload))
    if got != tag:
        raise ProtocolViolation(f"expected tag {tag}, got {got}")
    return it.pair_second(payload)


def open_request(message: Item, key: Key) -> Item:
    return expect_tag(open_authenticated(message, key), REQUEST_TAG)


def open_response(message: Item, key: Key) -> Tuple[Item, Item]:
    reqresp = expect_tag(open_authenticated(message, key), RESPONSE_TAG)
    return it.pair_first(reqresp), it.pair_second(reqresp)
