"""Persistence layer for the wallet payment layer.

Provides:
- WalletStore: SQLite storage for the wallet list and cached balances
- PaymentLog: Append-only JSONL logging of payments
"""

from zapwallet.persistence.database import WalletStore
from zapwallet.persistence.payment_log import PaymentLog

__all__ = ["PaymentLog", "WalletStore"]
