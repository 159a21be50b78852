"""Nostr primitives used as the Wallet Connect transport.

Provides:
- Event / Filter: signed events and subscription filters
- LocalSigner: in-memory identity with pairwise encryption
- RelayConnection: dedicated websocket connection to one relay
"""

from zapwallet.nostr.event import Event, Filter
from zapwallet.nostr.relay import RelayConnection, RelayPool
from zapwallet.nostr.subscription import Subscription
from zapwallet.nostr.signer import LocalSigner, Signer

__all__ = [
    "Event",
    "Filter",
    "LocalSigner",
    "RelayConnection",
    "RelayPool",
    "Signer",
    "Subscription",
]
