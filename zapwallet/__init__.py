"""Lightning payment layer: Nostr Wallet Connect client and wallet routing."""

__version__ = "0.1.0"
