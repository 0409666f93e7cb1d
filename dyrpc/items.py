from dataclasses import dataclass, field
from typing import Union

from .errors import AuthenticationFailure, ItemTooDeep, KeyRequired, TypeMismatch

"""
items.py — the item algebra.

Messages are modelled as structured values instead of bitstrings, so the
crypto is perfect by construction:
- Key(P, N) == Key(P', N') only if P == P' and N == N' (keys are unique).
- Hmac(P, N, body) only equals another Hmac with the same key and body
  (no collisions, no forgery without the key item).

Items are frozen dataclasses. Equality is the dataclass one: field-wise and
class-exact, so Key(1, 5) != Data(5). Items are trees of values; nothing is
ever mutated or shared by reference in a way that matters.
"""

MAX_ITEM_DEPTH = 64          # default nesting bound (see ModelConfig.max_item_depth)
I64_MIN = -(2 ** 63)
I64_MAX = 2 ** 63 - 1


def _seal(item, children, fields) -> None:
    # Depth and hash are fixed at construction. Attacker-built items share
    # subtrees heavily, so walking them again on every hash() would blow up.
    object.__setattr__(item, "depth", 1 + max((c.depth for c in children), default=0))
    object.__setattr__(item, "_hash", hash((type(item).__name__,) + fields))


def _cached_hash(item) -> int:
    return item._hash


@dataclass(frozen=True)
class Key:
    creator: int
    serial: int
    depth: int = field(default=1, init=False, compare=False, repr=False)
    _hash: int = field(default=0, init=False, compare=False, repr=False)

    def __post_init__(self) -> None:
        _seal(self, (), (self.creator, self.serial))

    __hash__ = _cached_hash


@dataclass(frozen=True)
class Data:
    value: int
    depth: int = field(default=1, init=False, compare=False, repr=False)
    _hash: int = field(default=0, init=False, compare=False, repr=False)

    def __post_init__(self) -> None:
        _seal(self, (), (self.value,))

    __hash__ = _cached_hash


@dataclass(frozen=True)
class Hmac:
    key_creator: int
    key_serial: int
    body: "Item"
    depth: int = field(default=1, init=False, compare=False, repr=False)
    _hash: int = field(default=0, init=False, compare=False, repr=False)

    def __post_init__(self) -> None:
        _seal(self, (self.body,), (self.key_creator, self.key_serial, self.body))

    __hash__ = _cached_hash


@dataclass(frozen=True)
class Pair:
    first: "Item"
    second: "Item"
    depth: int = field(default=1, init=False, compare=False, repr=False)
    _hash: int = field(default=0, init=False, compare=False, repr=False)

    def __post_init__(self) -> None:
        _seal(self, (self.first, self.second), (self.first, self.second))

    __hash__ = _cached_hash


Item = Union[Key, Data, Hmac, Pair]
ITEM_TYPES = (Key, Data, Hmac, Pair)


def _bounded(item, max_depth: int):
    if item.depth > max_depth:
        raise ItemTooDeep(f"item depth {item.depth} exceeds {max_depth}")
    return item


# -------------
# Constructors
# -------------

def create_key(registry, principal_id: int) -> Key:
    """Issue the next key of `principal_id` (Key(principal, old_count))."""
    return registry.create_key(principal_id)


def create_data(value: int) -> Data:
    # bool is an int subclass; don't let True sneak in as Data(1).
    if not isinstance(value, int) or isinstance(value, bool):
        raise TypeMismatch(f"data value must be an integer, got {type(value).__name__}")
    if not I64_MIN <= value <= I64_MAX:
        raise TypeMismatch(f"data value {value} does not fit in 64 bits")
    return Data(value)


def create_pair(first: Item, second: Item, max_depth: int = MAX_ITEM_DEPTH) -> Pair:
    return _bounded(Pair(first, second), max_depth)


# ----------
# Accessors
# ----------

def pair_first(item: Item) -> Item:
    if not isinstance(item, Pair):
        raise TypeMismatch(f"expected Pair, got {type(item).__name__}")
    return item.first


def pair_second(item: Item) -> Item:
    if not isinstance(item, Pair):
        raise TypeMismatch(f"expected Pair, got {type(item).__name__}")
    return item.second


def get_data(item: Item) -> int:
    if not isinstance(item, Data):
        raise TypeMismatch(f"expected Data, got {type(item).__name__}")
    return item.value


def check_is_key(item: Item) -> Key:
    """Return `item` if it's a Key; TypeMismatch otherwise."""
    if not isinstance(item, Key):
        raise TypeMismatch(f"expected Key, got {type(item).__name__}")
    return item


# ------------------
# Keyed hash (HMAC)
# ------------------

def hmac(key: Item, payload: Item, max_depth: int = MAX_ITEM_DEPTH) -> Hmac:
    if not isinstance(key, Key):
        raise KeyRequired(f"hmac needs a Key, got {type(key).__name__}")
    return _bounded(Hmac(key.creator, key.serial, payload), max_depth)


def verify_hmac(hash_item: Item, key: Item, payload: Item) -> None:
    """
    Succeed iff `hash_item` is exactly Hmac(key.creator, key.serial, payload).
    Purely structural; there is nothing probabilistic about it.
    """
    if not isinstance(key, Key):
        raise KeyRequired(f"verify_hmac needs a Key, got {type(key).__name__}")
    if hash_item != Hmac(key.creator, key.serial, payload):
        raise AuthenticationFailure("hmac does not match key and payload")


def equals(a: Item, b: Item) -> bool:
    return a == b
