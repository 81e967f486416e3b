import logging
import threading

from errors import LedgerError, TransportError
from validation import process_tx

logger = logging.getLogger("mempool_scanner")

DEFAULT_MEMPOOL_INTERVAL = 2.0
ERROR_RETRY_INTERVAL = 5.0


class MempoolScanner:
    """
    Polls the node's mempool and emits payments of unconfirmed transactions.

    Every transaction is looked at once. Transactions that fail validation or
    disappear before they can be fetched are logged and skipped.
    """

    def __init__(self, ledger, on_output, on_error=None, interval: float = DEFAULT_MEMPOOL_INTERVAL):
        self.ledger = ledger
        self.on_output = on_output
        self.on_error = on_error
        self.interval = interval
        self.seen_txids = set()
        self._stop_event = threading.Event()
        self._thread = None

    def process_txid(self, txid: str) -> int:
        raw = self.ledger.raw_transaction(txid)
        tx = self.ledger.decode_transaction(raw)
        events = process_tx(tx)
        for event in events:
            self.on_output(event)
        return len(events)

    def scan_once(self) -> int:
        mempool_txids = self.ledger.mempool_txids()
        emitted = 0
        for txid in mempool_txids:
            if txid in self.seen_txids:
                continue
            try:
                emitted += self.process_txid(txid)
            except TransportError as e:
                # Not marked as seen, fetched again on the next poll
                logger.warning(f"[MempoolScanner] Could not fetch tx {txid}, will retry: {e}")
                continue
            except LedgerError as e:
                logger.warning(f"[MempoolScanner] Could not fetch tx {txid}: {e}")
            except Exception as e:
                logger.error(f"[MempoolScanner] Error processing tx {txid}: {e}")
            self.seen_txids.add(txid)

        # Forget transactions that left the mempool
        self.seen_txids.intersection_update(mempool_txids)
        return emitted

    def run(self) -> None:
        logger.info("[MempoolScanner] Monitoring mempool for new transactions...")
        while not self._stop_event.is_set():
            try:
                self.scan_once()
                delay = self.interval
            except Exception as e:
                logger.error(f"[MempoolScanner] Error: {e}")
                if self.on_error is not None:
                    self.on_error(e)
                delay = ERROR_RETRY_INTERVAL
            self._stop_event.wait(delay)
        logger.info("[MempoolScanner] Stopped")

    def start(self) -> None:
        if self._thread is not None:
            raise RuntimeError("Already started")
        self._thread = threading.Thread(target=self.run, name="mempool-scanner", daemon=True)
        self._thread.start()

    def stop(self, timeout: float = None) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
