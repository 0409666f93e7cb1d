"""
crypto.py — a reference bitstring backend for items.

Why this exists:
- The model treats crypto as perfect. A real deployment binds every item to
  bytes; this module shows one such binding so the symbolic guarantees have
  a concrete counterpart: distinct items -> distinct bytes (with
  overwhelming probability), and Hmac items are real HMAC-SHA256 tags.

Notes:
- Key material is 32 random bytes per (creator, serial), made on first use.
- Encoding: 1 variant byte, then the body. Pairs length-prefix their first
  half (4-byte little-endian) so both halves can be recovered.
- verify_realized() uses cryptography's constant-time verify and returns a
  bool rather than raising.
"""

import base64
import os
import struct
import threading
from typing import Dict, Tuple

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, hmac

from .errors import KeyRequired, TypeMismatch
from .items import Data, Hmac, Item, Key, Pair

KEY_SIZE = 32
LENGTH_STRUCT = struct.Struct("<I")  # little-endian unsigned 32-bit length
DATA_STRUCT = struct.Struct("<q")    # signed 64-bit data value

TAG_KEY = b"K"
TAG_DATA = b"D"
TAG_HMAC = b"H"
TAG_PAIR = b"P"


# -----------------------------
# Base64 URL helpers (no padding)
# -----------------------------

def b64url_encode(data: bytes) -> str:
    """URL-safe Base64 without '=' padding."""
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def b64url_decode(data: str) -> bytes:
    pad_len = (-len(data)) % 4
    return base64.urlsafe_b64decode(data + "=" * pad_len)


# ------------
# Key material
# ------------

class KeyStore:
    """(creator, serial) -> secret bytes. Never hands the same bytes out twice."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._material: Dict[Tuple[int, int], bytes] = {}
        self._issued: set[bytes] = set()

    def material(self, key: Item) -> bytes:
        if not isinstance(key, Key):
            raise KeyRequired(f"no key material for {type(key).__name__}")
        ref = (key.creator, key.serial)
        with self._lock:
            secret = self._material.get(ref)
            if secret is None:
                secret = os.urandom(KEY_SIZE)
                while secret in self._issued:
                    secret = os.urandom(KEY_SIZE)
                self._issued.add(secret)
                self._material[ref] = secret
            return secret


# -------------------
# Items -> bitstrings
# -------------------

def hmac_sha256(secret: bytes, data: bytes) -> bytes:
    h = hmac.HMAC(secret, hashes.SHA256())
    h.update(data)
    return h.finalize()


def realize(store: KeyStore, item: Item) -> bytes:
    """The bitstring standing behind `item`."""
    if isinstance(item, Key):
        return TAG_KEY + store.material(item)
    if isinstance(item, Data):
        return TAG_DATA + DATA_STRUCT.pack(item.value)
    if isinstance(item, Hmac):
        key = Key(item.key_creator, item.key_serial)
        return TAG_HMAC + hmac_sha256(store.material(key), realize(store, item.body))
    if isinstance(item, Pair):
        first = realize(store, item.first)
        return TAG_PAIR + LENGTH_STRUCT.pack(len(first)) + first + realize(store, item.second)
    raise TypeMismatch(f"not an item: {type(item).__name__}")


def verify_realized(store: KeyStore, tag: bytes, key: Item, payload: Item) -> bool:
    """
    Check a realized Hmac (as produced by realize()) against key + payload.
    Returns True on success, False on any mismatch.
    """
    if not tag.startswith(TAG_HMAC):
        return False
    h = hmac.HMAC(store.material(key), hashes.SHA256())
    h.update(realize(store, payload))
    try:
        h.verify(tag[len(TAG_HMAC):])
        return True
    except InvalidSignature:
        return False


def fingerprint(store: KeyStore, item: Item) -> str:
    """Short printable id for an item's bitstring (logs, debugging)."""
    digest = hashes.Hash(hashes.SHA256())
    digest.update(realize(store, item))
    return b64url_encode(digest.finalize()[:12])
