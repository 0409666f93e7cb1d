import os
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, Mapping, Optional, Tuple

from .errors import ConfigError
from .items import MAX_ITEM_DEPTH

"""
config.py — the setup surface, fixed before any role starts.

Holds who is corrupted (`bad`) and which principal each issued key is shared
with (`shared_keys`). Both are frozen: nothing in the model can mark a
principal bad or rebind a key mid-run.

Environment overrides (handy for scripted exploration runs):
    DYRPC_BAD          comma separated principal ids, e.g. "3,4"
    DYRPC_SHARED_KEYS  creator:serial=peer list, e.g. "1:0=2,1:1=3"
    DYRPC_MAX_DEPTH    nesting bound for items
    DYRPC_SEED         RNG seed for the channel and the attacker
"""

KeyRef = Tuple[int, int]  # (creator, serial)

DEFAULT_DATA_VALUES = range(-4, 5)  # covers both protocol tags (0 and 1)


@dataclass(frozen=True)
class ModelConfig:
    bad: frozenset = frozenset()
    shared_keys: Mapping[KeyRef, int] = field(default_factory=dict)
    max_item_depth: int = MAX_ITEM_DEPTH
    data_values: range = DEFAULT_DATA_VALUES
    seed: Optional[int] = None

    def __post_init__(self) -> None:
        # Freeze whatever the caller handed us.
        object.__setattr__(self, "bad", frozenset(self.bad))
        object.__setattr__(self, "shared_keys", MappingProxyType(dict(self.shared_keys)))
        if self.max_item_depth < 3:
            # request/response messages are at least 3 levels deep
            raise ConfigError(f"max_item_depth too small: {self.max_item_depth}")
        if len(self.data_values) == 0:
            raise ConfigError("data_values must not be empty")

    def is_bad(self, principal: Optional[int]) -> bool:
        """bad(None) is False: an unshared key has no corrupted peer."""
        return principal is not None and principal in self.bad

    def shared_with(self, creator: int, serial: int) -> Optional[int]:
        return self.shared_keys.get((creator, serial))

    def key_compromised(self, creator: int, serial: int) -> bool:
        """bad(creator) || bad(shared_with(creator, serial))"""
        return self.is_bad(creator) or self.is_bad(self.shared_with(creator, serial))

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ModelConfig":
        env = os.environ if environ is None else environ
        kwargs: Dict[str, object] = {}
        try:
            if env.get("DYRPC_BAD"):
                kwargs["bad"] = frozenset(_parse_ids(env["DYRPC_BAD"]))
            if env.get("DYRPC_SHARED_KEYS"):
                kwargs["shared_keys"] = _parse_shared_keys(env["DYRPC_SHARED_KEYS"])
            if env.get("DYRPC_MAX_DEPTH"):
                kwargs["max_item_depth"] = int(env["DYRPC_MAX_DEPTH"])
            if env.get("DYRPC_SEED"):
                kwargs["seed"] = int(env["DYRPC_SEED"])
        except ValueError as exc:
            raise ConfigError(f"Invalid dyrpc environment: {exc}") from exc
        return cls(**kwargs)


def _parse_ids(raw: str):
    return [int(p) for p in raw.split(",") if p.strip()]


def _parse_shared_keys(raw: str) -> Dict[KeyRef, int]:
    """"1:0=2,1:1=3" -> {(1, 0): 2, (1, 1): 3}"""
    out: Dict[KeyRef, int] = {}
    for entry in raw.split(","):
        entry = entry.strip()
        if not entry:
            continue
        ref, sep, peer = entry.partition("=")
        creator, colon, serial = ref.partition(":")
        if not sep or not colon:
            raise ValueError(f"bad shared key entry {entry!r}")
        out[(int(creator), int(serial))] = int(peer)
    return out
