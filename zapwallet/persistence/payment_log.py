"""Payment audit logging to JSONL files."""

import json
from datetime import date
from pathlib import Path
from time import time
from typing import Any

import aiofiles
from loguru import logger

from zapwallet.models import WalletKind


class PaymentLog:
    """Append-only JSONL log of payment attempts and their outcomes.

    One file per day. Preimages and invoices are recorded; connection
    secrets never are.

    Example output (payments_2026-10-18.jsonl):
        {"logged_at": 1792300000.0, "wallet_id": 1, "kind": "remote_rpc", "target": "lnbc...", ...}
    """

    def __init__(self, data_dir: Path = Path("data/payments")) -> None:
        """Initialize the payment log.

        Args:
            data_dir: Directory for storing payment logs. Created if not exists.
        """
        self._data_dir = data_dir
        self._ensure_data_dir()

    def _ensure_data_dir(self) -> None:
        try:
            self._data_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.error("Failed to create payment log directory {}: {}", self._data_dir, e)

    def daily_filepath(self) -> Path:
        """Path of today's payment log."""
        return self._data_dir / f"payments_{date.today().isoformat()}.jsonl"

    async def log_payment(
        self,
        *,
        wallet_id: int,
        kind: WalletKind,
        target: str,
        amount_sats: int | None,
        success: bool,
        preimage: str | None = None,
        error: str | None = None,
    ) -> None:
        """Append one payment record.

        Note:
            IO errors are logged but do not raise exceptions.
            A payment outcome is never changed by a logging failure.
        """
        filepath = self.daily_filepath()

        record: dict[str, Any] = {
            "logged_at": time(),
            "wallet_id": wallet_id,
            "kind": kind.value,
            "target": target,
            "amount_sats": amount_sats,
            "success": success,
            "preimage": preimage,
            "error": error,
        }

        try:
            async with aiofiles.open(filepath, "a") as f:
                await f.write(json.dumps(record) + "\n")
        except OSError as e:
            logger.error("Failed to persist payment to {}: {}", filepath, e)
