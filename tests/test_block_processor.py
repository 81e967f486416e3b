"""Tests for fetching and validating the transactions of one block."""
import pytest

from block_processor import BlockProcessor
from errors import BlockProcessingError, TransactionValidationError, TransportError
from tests.fakes import FakeLedger, HASH160, make_tx, p2pkh_output


def block_of(txs, height=1):
    return FakeLedger({height: txs})


def block_dict(ledger, height=1):
    return ledger.block_by_hash(ledger.block_hash_at(height))


class TestBlockProcessor:

    def test_emits_all_payments(self):
        txs = [make_tx(f"tx{i}", [p2pkh_output(0, "1", f"addr{i}")]) for i in range(5)]
        ledger = block_of(txs)
        events = []
        processor = BlockProcessor(ledger, events.append)

        assert processor.process_block(block_dict(ledger)) == 5
        assert sorted(e.address for e in events) == [f"addr{i}" for i in range(5)]

    def test_concurrency_is_bounded(self):
        """A 10 transaction block never has more than 3 fetches outstanding."""
        txs = [make_tx(f"tx{i}", [p2pkh_output(0, "1")]) for i in range(10)]
        ledger = FakeLedger({1: txs}, delay=0.02)
        processor = BlockProcessor(ledger, lambda event: None, concurrency=3)

        processor.process_block(block_dict(ledger))

        assert ledger.max_in_flight <= 3
        assert ledger.max_in_flight > 1

    def test_ignored_transactions_count_as_success(self):
        txs = [make_tx("old", [p2pkh_output(0, "1")], version=7), make_tx("tx1", [p2pkh_output(0, "1")])]
        ledger = block_of(txs)
        events = []

        assert BlockProcessor(ledger, events.append).process_block(block_dict(ledger)) == 1
        assert [e.txid for e in events] == ["tx1"]

    def test_empty_block(self):
        ledger = FakeLedger({1: []})
        assert BlockProcessor(ledger, lambda event: None).process_block(block_dict(ledger)) == 0

    def test_block_without_tx_list(self):
        processor = BlockProcessor(FakeLedger(), lambda event: None)
        with pytest.raises(BlockProcessingError, match="no tx list"):
            processor.process_block({"hash": "abc"})

    def test_fetch_failure_fails_block(self):
        txs = [make_tx(f"tx{i}", [p2pkh_output(0, "1")]) for i in range(3)]
        ledger = block_of(txs)
        ledger.fail_txids.add("tx1")

        with pytest.raises(BlockProcessingError) as excinfo:
            BlockProcessor(ledger, lambda event: None).process_block(block_dict(ledger))

        assert excinfo.value.txid == "tx1"
        assert isinstance(excinfo.value.cause, TransportError)

    def test_validation_failure_names_transaction_and_output(self):
        bad = p2pkh_output(2, "1")
        bad["scriptPubKey"]["asm"] = f"OP_DUP OP_HASH160 {HASH160} OP_EQUALVERIFY"
        ledger = block_of([make_tx("good", [p2pkh_output(0, "1")]),
                           make_tx("bad", [p2pkh_output(0, "1"), p2pkh_output(1, "1"), bad])])

        with pytest.raises(BlockProcessingError, match="failed to process bad: failed to process output #2") as excinfo:
            BlockProcessor(ledger, lambda event: None).process_block(block_dict(ledger))

        assert isinstance(excinfo.value.cause, TransactionValidationError)
        assert excinfo.value.cause.output_index == 2

    def test_first_failure_stops_starting_new_transactions(self):
        """Once a transaction fails, no transaction after the in-flight ones is fetched."""
        txs = [make_tx(f"tx{i}", [p2pkh_output(0, "1", f"addr{i}")]) for i in range(10)]
        ledger = FakeLedger({1: txs}, delay=0.5)
        ledger.delays["tx0"] = 0.05
        ledger.fail_txids.add("tx0")
        fetched = []
        events = []
        processor = BlockProcessor(ledger, events.append, concurrency=3)
        original_fetch = processor.fetch_tx

        def recording_fetch(txid):
            fetched.append(txid)
            return original_fetch(txid)
        processor.fetch_tx = recording_fetch

        with pytest.raises(BlockProcessingError) as excinfo:
            processor.process_block(block_dict(ledger))

        assert excinfo.value.txid == "tx0"
        assert sorted(fetched) == ["tx0", "tx1", "tx2"]
        assert sorted(e.txid for e in events) == ["tx1", "tx2"]

    def test_concurrency_must_be_positive(self):
        with pytest.raises(ValueError):
            BlockProcessor(FakeLedger(), lambda event: None, concurrency=0)
