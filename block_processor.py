import logging
import threading
from concurrent.futures import ThreadPoolExecutor, FIRST_EXCEPTION, wait

from errors import BlockProcessingError
from validation import process_tx

logger = logging.getLogger("block_processor")

DEFAULT_TX_CONCURRENCY = 3


class BlockProcessor:
    """
    Fetches and validates every transaction of a block, emitting payments.

    At most `concurrency` transactions are fetched at once. The first failure
    cancels the transactions that have not started yet and fails the block.
    """

    def __init__(self, ledger, on_output, concurrency: int = DEFAULT_TX_CONCURRENCY):
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self.ledger = ledger
        self.on_output = on_output
        self.concurrency = concurrency
        self._emit_lock = threading.Lock()

    def fetch_tx(self, txid: str) -> dict:
        raw = self.ledger.raw_transaction(txid)
        return self.ledger.decode_transaction(raw)

    def process_txid(self, txid: str, abort: threading.Event = None) -> int:
        """
        Fetch, validate and emit one transaction.

        When `abort` is given it is set on failure, and a transaction picked up
        after it was set is skipped without touching the ledger.
        """
        if abort is not None and abort.is_set():
            return 0
        try:
            tx = self.fetch_tx(txid)
            events = process_tx(tx)
        except Exception as e:
            if abort is not None:
                abort.set()
            raise BlockProcessingError(txid, e) from e

        for event in events:
            with self._emit_lock:
                self.on_output(event)
        return len(events)

    def process_block(self, block: dict) -> int:
        """Process all transactions of `block` and return the number of payments emitted"""
        txids = block.get("tx")
        if txids is None:
            raise BlockProcessingError(block.get("hash", "<unknown block>"), ValueError("block has no tx list"))

        logger.info(f"[BlockProcessor] Processing {len(txids)} transactions")
        if not txids:
            return 0

        abort = threading.Event()
        pool = ThreadPoolExecutor(max_workers=self.concurrency, thread_name_prefix="block-processor")
        try:
            futures = [pool.submit(self.process_txid, txid, abort) for txid in txids]
            done, pending = wait(futures, return_when=FIRST_EXCEPTION)
            failed = [f for f in futures if f.done() and not f.cancelled() and f.exception() is not None]
            if failed:
                for future in pending:
                    future.cancel()
                # Report the earliest failing transaction in block order
                raise failed[0].exception()
            return sum(f.result() for f in futures)
        finally:
            pool.shutdown(wait=True, cancel_futures=True)
