"""
dyrpc — Dolev-Yao model of a challenge-response RPC protocol.

Messages are symbolic items, not bytes, so the crypto is perfect by
construction and the only thing left to check is the protocol itself:
- Client and server authenticate every datagram with a shared key (HMAC).
- A tag (0 = request, 1 = response) keeps the two directions apart.
- Responses echo the request, so a reply can't be pinned on the wrong call.

The attacker owns the channel: it sees everything, can replay, drop,
pair/unpair and hash with any key a corrupted principal leaked. Pub (pub.py)
is the line between what it can and can't produce.
"""
__all__ = [
    "attacker",
    "config",
    "crypto",
    "errors",
    "events",
    "items",
    "messages",
    "node",
    "principals",
    "pub",
    "run_model",
    "world",
]
