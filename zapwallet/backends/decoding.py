"""Typed decoding of loosely structured SDK records.

The embedded node SDK has shipped several record shapes over time, so a
single field may live under different names (``amountSat`` vs
``amount_sat``) or nested paths (``paymentMethod.txid``). Each field is
declared once with its ordered candidate paths; decoding reports which
candidate supplied the value.
"""

import time
import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from loguru import logger

from zapwallet.models import (
    Transaction,
    TransactionStatus,
    TransactionType,
    msat_to_sat,
)

# Timestamps above this (2100-01-01 in seconds) are treated as milliseconds
MAX_SECONDS_TIMESTAMP = 4102444800

INCOMING_PAYMENT_TYPES = frozenset({"received", "receive", "incoming"})


@dataclass(frozen=True)
class FieldSpec:
    """One logical field and its candidate paths, in priority order."""

    name: str
    paths: tuple[str, ...]

    @property
    def primary(self) -> str:
        return self.paths[0]


@dataclass(frozen=True)
class DecodedField:
    name: str
    value: Any = None
    source: str | None = None
    primary: str = ""

    @property
    def found(self) -> bool:
        return self.source is not None

    @property
    def used_fallback(self) -> bool:
        return self.found and self.source != self.primary


@dataclass(frozen=True)
class DecodedRecord:
    """Result of decoding one record."""

    fields: dict[str, DecodedField] = field(default_factory=dict)

    def value(self, name: str, default: Any = None) -> Any:
        decoded = self.fields.get(name)
        if decoded is None or not decoded.found:
            return default
        return decoded.value

    def source(self, name: str) -> str | None:
        decoded = self.fields.get(name)
        return decoded.source if decoded else None

    def found(self, name: str) -> bool:
        decoded = self.fields.get(name)
        return decoded is not None and decoded.found

    @property
    def fallbacks(self) -> dict[str, str]:
        """Fields that were read from a non-primary path, keyed by field name."""
        return {
            name: decoded.source
            for name, decoded in self.fields.items()
            if decoded.used_fallback and decoded.source is not None
        }


def lookup_path(record: Mapping[str, Any], path: str) -> Any:
    """Follow a dotted path through nested mappings (None if absent)."""
    current: Any = record
    for part in path.split("."):
        if not isinstance(current, Mapping):
            return None
        current = current.get(part)
    return current


def _present(value: Any) -> bool:
    return value is not None and value != ""


class RecordDecoder:
    """Decode records against a fixed set of field specs.

    Example:
        decoder = RecordDecoder("info", FieldSpec("balance", ("balanceSat", "balance_sat")))
        record = decoder.decode({"balance_sat": 21})
        record.value("balance")   # 21
        record.fallbacks          # {"balance": "balance_sat"}
    """

    def __init__(self, label: str, *specs: FieldSpec) -> None:
        self._label = label
        self._specs = specs

    @property
    def label(self) -> str:
        return self._label

    def decode(self, record: Mapping[str, Any]) -> DecodedRecord:
        fields: dict[str, DecodedField] = {}
        for spec in self._specs:
            decoded = DecodedField(name=spec.name, primary=spec.primary)
            for path in spec.paths:
                value = lookup_path(record, path)
                if _present(value):
                    decoded = DecodedField(
                        name=spec.name, value=value, source=path, primary=spec.primary
                    )
                    break
            fields[spec.name] = decoded

        result = DecodedRecord(fields=fields)
        if result.fallbacks:
            logger.debug("Decoded {} via fallbacks: {}", self._label, result.fallbacks)
        return result


# =============================================================================
# Embedded SDK record decoders
# =============================================================================

PAYMENT_ID = FieldSpec("id", ("id", "paymentHash", "payment_hash"))

PAYMENT_DECODER = RecordDecoder(
    "payment",
    PAYMENT_ID,
    FieldSpec("payment_type", ("paymentType", "payment_type", "type")),
    FieldSpec("amount_sat", ("amountSat", "amount_sat", "amount")),
    FieldSpec("amount_msat", ("amountMsat", "amount_msat", "amountMSat")),
    FieldSpec("fees_sat", ("feesSat", "fees_sat", "fees")),
    FieldSpec("fees_msat", ("feesMsat", "fees_msat", "feesMSat")),
    FieldSpec("timestamp", ("createdAt", "created_at", "timestamp", "time")),
    FieldSpec("status", ("status",)),
    FieldSpec("description", ("description", "memo")),
    FieldSpec("bolt11", ("bolt11",)),
    FieldSpec(
        "txid",
        (
            "txid",
            "txId",
            "tx_id",
            "txHash",
            "tx_hash",
            "transactionId",
            "transaction_id",
            "onchainTxid",
            "onchain_txid",
            "onchain.txid",
            "onchain.txId",
            "paymentMethod.txid",
            "paymentMethod.txId",
            "paymentMethod.transactionId",
            "paymentMethod.transaction_id",
            "paymentMethod.txHash",
            "paymentMethod.tx_hash",
        ),
    ),
    FieldSpec("method_type", ("paymentMethod.type", "payment_method.type")),
    FieldSpec("onchain", ("onchain",)),
)

INFO_DECODER = RecordDecoder(
    "node info",
    FieldSpec("balance_sat", ("balanceSat", "balance_sat", "balanceSats", "balance")),
    FieldSpec("balance_msat", ("balanceMsat", "balance_msat")),
    FieldSpec("lightning_address", ("lightningAddress.address", "lightningAddress", "lightning_address", "lud16")),
)

SEND_DECODER = RecordDecoder(
    "send result",
    FieldSpec("preimage", ("payment.details.preimage", "payment.preimage", "preimage", "paymentPreimage")),
    FieldSpec("id", ("payment.id", "payment.paymentHash", "id", "paymentHash", "payment_hash")),
)

RECEIVE_DECODER = RecordDecoder(
    "receive result",
    FieldSpec("invoice", ("paymentRequest", "payment_request", "invoice", "bolt11")),
    FieldSpec("payment_hash", ("paymentHash", "payment_hash")),
)

PAGE_DECODER = RecordDecoder(
    "payment page",
    FieldSpec("has_more", ("hasMore", "has_more")),
)

EVENT_DECODER = RecordDecoder(
    "node event",
    FieldSpec("type", ("type", "kind")),
    FieldSpec("payment", ("payment", "details.payment")),
)


def normalize_timestamp(value: Any) -> int:
    """Unix seconds from a seconds-or-milliseconds value (0 if unreadable)."""
    try:
        timestamp = int(value or 0)
    except (TypeError, ValueError):
        return 0
    if timestamp > MAX_SECONDS_TIMESTAMP:
        timestamp //= 1000
    return timestamp


def _to_int(value: Any) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


def payment_id(record: Mapping[str, Any]) -> str | None:
    """Identifier used to de-duplicate SDK payments."""
    value = PAYMENT_DECODER.decode(record).value("id")
    return str(value) if value is not None else None


def payment_timestamp(record: Mapping[str, Any]) -> int:
    """Creation time of an SDK payment in Unix seconds."""
    return normalize_timestamp(PAYMENT_DECODER.decode(record).value("timestamp"))


def payment_to_transaction(record: Mapping[str, Any]) -> Transaction:
    """Normalize one SDK payment record into a Transaction."""
    decoded = PAYMENT_DECODER.decode(record)

    payment_type = str(decoded.value("payment_type", ""))
    is_incoming = payment_type.lower() in INCOMING_PAYMENT_TYPES

    if decoded.found("amount_sat"):
        amount = _to_int(decoded.value("amount_sat"))
    else:
        amount = msat_to_sat(_to_int(decoded.value("amount_msat")))

    fees: int | None = None
    if decoded.found("fees_sat"):
        fees = _to_int(decoded.value("fees_sat"))
    elif decoded.found("fees_msat"):
        fees = msat_to_sat(_to_int(decoded.value("fees_msat")))

    raw_status = str(decoded.value("status", "completed")).lower()
    if raw_status == "pending":
        status = TransactionStatus.PENDING
    elif raw_status == "failed":
        status = TransactionStatus.FAILED
    else:
        status = TransactionStatus.COMPLETED

    txid = decoded.value("txid")
    if txid is None:
        is_onchain = (
            decoded.value("method_type") == "bitcoinAddress"
            or decoded.found("onchain")
            or "onchain" in payment_type.lower()
        )
        if is_onchain:
            logger.warning("On-chain payment {} has no txid", decoded.value("id"))

    bolt11 = decoded.value("bolt11")
    description = decoded.value("description") or (bolt11[:20] if bolt11 else None)

    return Transaction(
        id=str(decoded.value("id") or txid or uuid.uuid4().hex),
        type=TransactionType.INCOMING if is_incoming else TransactionType.OUTGOING,
        amount=max(amount, 0),
        timestamp=normalize_timestamp(decoded.value("timestamp")) or int(time.time()),
        txid=str(txid) if txid is not None else None,
        description=description,
        fees=fees,
        status=status,
    )
