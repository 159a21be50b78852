"""Wallet backends, one per wallet kind.

Provides:
- RemoteWalletBackend: Nostr Wallet Connect wallets
- ExtensionWalletBackend: browser-extension (WebLN) wallets
- EmbeddedWalletBackend: embedded self-custodial node
- default_backend_factories: kind -> factory mapping used by the wallet manager
"""

from collections.abc import Callable

from zapwallet.backends.embedded import EmbeddedWalletBackend
from zapwallet.backends.extension import ExtensionWalletBackend
from zapwallet.backends.remote import RemoteWalletBackend
from zapwallet.config import EmbeddedConfig
from zapwallet.interfaces.backend import WalletBackend
from zapwallet.interfaces.providers import ExtensionProvider, NodeSdk
from zapwallet.lnurl import LnurlClient
from zapwallet.models import WalletKind
from zapwallet.nostr.relay import RelayPool

# Builds a backend from a wallet record's opaque data string
BackendFactory = Callable[[str], WalletBackend]


def default_backend_factories(
    *,
    pool: RelayPool | None = None,
    extension_provider: ExtensionProvider | None = None,
    node_sdk: NodeSdk | None = None,
    seed: str | None = None,
    embedded_config: EmbeddedConfig | None = None,
    lnurl: LnurlClient | None = None,
) -> dict[WalletKind, BackendFactory]:
    """Factories for every wallet kind.

    Missing collaborators surface as BackendUnavailable when the factory is
    invoked, not here.
    """
    return {
        WalletKind.REMOTE_RPC: lambda data: RemoteWalletBackend(data, pool=pool, lnurl=lnurl),
        WalletKind.EXTENSION: lambda data: ExtensionWalletBackend(extension_provider, lnurl=lnurl),
        WalletKind.EMBEDDED: lambda data: EmbeddedWalletBackend(
            node_sdk, data, seed, config=embedded_config, lnurl=lnurl
        ),
    }


__all__ = [
    "BackendFactory",
    "EmbeddedWalletBackend",
    "ExtensionWalletBackend",
    "RemoteWalletBackend",
    "default_backend_factories",
]
