"""Tests for typed decoding of embedded SDK records."""

import time

from zapwallet.backends.decoding import (
    INFO_DECODER,
    SEND_DECODER,
    FieldSpec,
    RecordDecoder,
    lookup_path,
    normalize_timestamp,
    payment_id,
    payment_to_transaction,
)
from zapwallet.models import TransactionStatus, TransactionType


class TestRecordDecoder:
    """Tests for RecordDecoder and its fallback reporting."""

    def test_primary_path(self) -> None:
        """A value under the primary name is not a fallback."""
        decoder = RecordDecoder("test", FieldSpec("balance", ("balanceSat", "balance_sat")))

        record = decoder.decode({"balanceSat": 21})

        assert record.value("balance") == 21
        assert record.source("balance") == "balanceSat"
        assert record.fallbacks == {}

    def test_fallback_is_reported(self) -> None:
        """A value found under a later name is reported as a fallback."""
        decoder = RecordDecoder("test", FieldSpec("balance", ("balanceSat", "balance_sat")))

        record = decoder.decode({"balance_sat": 21})

        assert record.value("balance") == 21
        assert record.fallbacks == {"balance": "balance_sat"}

    def test_missing_field_uses_default(self) -> None:
        """Absent, None and empty-string values count as missing."""
        decoder = RecordDecoder("test", FieldSpec("memo", ("memo", "description")))

        record = decoder.decode({"memo": "", "description": None})

        assert record.found("memo") is False
        assert record.value("memo", "none") == "none"
        assert record.source("memo") is None

    def test_zero_is_present(self) -> None:
        """Zero is a real value, not a missing one."""
        record = INFO_DECODER.decode({"balanceSat": 0, "balance_sat": 50})

        assert record.value("balance_sat") == 0

    def test_nested_paths(self) -> None:
        """Dotted paths should walk nested records."""
        record = SEND_DECODER.decode({"payment": {"details": {"preimage": "ab"}, "id": "p1"}})

        assert record.value("preimage") == "ab"
        assert record.value("id") == "p1"

    def test_lookup_path_through_non_mapping(self) -> None:
        """Paths through scalars resolve to None."""
        assert lookup_path({"a": 1}, "a.b") is None
        assert lookup_path({"a": {"b": 2}}, "a.b") == 2


class TestNormalizeTimestamp:
    """Tests for normalize_timestamp."""

    def test_seconds_kept(self) -> None:
        assert normalize_timestamp(1_700_000_000) == 1_700_000_000

    def test_milliseconds_converted(self) -> None:
        assert normalize_timestamp(1_700_000_000_123) == 1_700_000_000

    def test_unreadable_is_zero(self) -> None:
        assert normalize_timestamp("soon") == 0
        assert normalize_timestamp(None) == 0


class TestPaymentToTransaction:
    """Tests for payment_to_transaction."""

    def test_incoming_lightning_payment(self) -> None:
        """An incoming payment keeps its id, amount and timestamp."""
        tx = payment_to_transaction(
            {
                "id": "pay-1",
                "paymentType": "receive",
                "amountSat": 2100,
                "feesSat": 3,
                "timestamp": 1_700_000_000,
                "status": "completed",
                "description": "Tip",
            }
        )

        assert tx.id == "pay-1"
        assert tx.type is TransactionType.INCOMING
        assert tx.amount == 2100
        assert tx.fees == 3
        assert tx.timestamp == 1_700_000_000
        assert tx.status is TransactionStatus.COMPLETED
        assert tx.description == "Tip"

    def test_msat_fields_floored(self) -> None:
        """Millisat amounts should be floored to sats."""
        tx = payment_to_transaction(
            {"payment_hash": "h1", "payment_type": "send", "amount_msat": 1999, "fees_msat": 999}
        )

        assert tx.id == "h1"
        assert tx.type is TransactionType.OUTGOING
        assert tx.amount == 1
        assert tx.fees == 0

    def test_status_mapping(self) -> None:
        """Pending and failed statuses map through; anything else is completed."""
        assert payment_to_transaction({"id": "a", "status": "Pending"}).status is TransactionStatus.PENDING
        assert payment_to_transaction({"id": "a", "status": "failed"}).status is TransactionStatus.FAILED
        assert payment_to_transaction({"id": "a", "status": "settled"}).status is TransactionStatus.COMPLETED

    def test_onchain_txid_from_nested_method(self) -> None:
        """Txids nested under the payment method are found."""
        tx = payment_to_transaction(
            {"paymentType": "send", "amountSat": 50_000, "paymentMethod": {"type": "bitcoinAddress", "txid": "tx1"}}
        )

        assert tx.txid == "tx1"
        assert tx.id == "tx1"

    def test_description_falls_back_to_invoice_prefix(self) -> None:
        """Without a description the first 20 invoice characters are shown."""
        tx = payment_to_transaction({"id": "a", "bolt11": "lnbc2500u1pvjluezpp5qqqsyqcyq5rqwzqf"})

        assert tx.description == "lnbc2500u1pvjluezpp5"

    def test_missing_timestamp_is_now(self) -> None:
        """Records without a timestamp are stamped with the current time."""
        before = int(time.time())

        tx = payment_to_transaction({"id": "a", "amountSat": 1})

        assert tx.timestamp >= before

    def test_missing_id_generates_one(self) -> None:
        """Records without any identifier still get a unique id."""
        first = payment_to_transaction({"amountSat": 1})
        second = payment_to_transaction({"amountSat": 1})

        assert first.id and second.id and first.id != second.id
        assert payment_id({"amountSat": 1}) is None
