"""
errors.py — the fault hierarchy.

Two kinds of faults show up while handling items:
- Structural faults: an item was used as the wrong variant (a Data where a
  Pair was expected, a hash under something that isn't a Key, ...).
- Protocol faults: the item is well-formed but doesn't authenticate, or
  carries the wrong tag / the wrong correlated request.

ModelError covers misuse of the model itself (non-public sends, illegal
attacker moves, broken setup). Those are bugs, not hostile datagrams.
"""


class DolevYaoError(Exception):
    """Base class for everything raised by dyrpc."""


# -----------------
# Structural faults
# -----------------

class StructuralFault(DolevYaoError):
    pass


class TypeMismatch(StructuralFault):
    """Item accessed as the wrong variant."""


class KeyRequired(TypeMismatch):
    """hmac()/verify_hmac() called with something that isn't a Key item."""


class ItemTooDeep(StructuralFault):
    """Nesting exceeds the configured depth bound."""


# ---------------
# Protocol faults
# ---------------

class ProtocolFault(DolevYaoError):
    pass


class AuthenticationFailure(ProtocolFault):
    pass


class ProtocolViolation(ProtocolFault):
    """Wrong tag, or a reply correlated to a different request."""


# ------------
# Model errors
# ------------

class ModelError(DolevYaoError):
    pass


class PubViolation(ModelError):
    """Someone tried to put a non-public item on a checked channel."""


class IllegalAction(ModelError):
    """Attacker move whose precondition doesn't hold."""


class ConfigError(ModelError):
    pass
