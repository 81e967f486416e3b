import enum
import logging
import threading

from block_processor import BlockProcessor, DEFAULT_TX_CONCURRENCY
from errors import InitializationError, ScanError, StoreError

logger = logging.getLogger("block_scanner")

DEFAULT_MIN_CONF = 1
DEFAULT_SCAN_INTERVAL = 10.0


class ScannerState(enum.Enum):
    IDLE = "idle"
    SCANNING = "scanning"
    WAITING = "waiting"
    STOPPING = "stopping"


class ConfirmedScanner:
    """
    Walks confirmed blocks in height order and emits the payments they contain.

    `load_height()` returns the last scanned height (or None) and
    `persist_height(height)` records progress after each block. A height is
    only counted as scanned once its block was processed and persisted, a
    failure anywhere aborts the current scan and the same height is retried
    `interval` seconds later.

    Payments go to `on_output(event)` and problems to `on_error(exc)`.
    `on_output` is called from worker threads, one call at a time.
    """

    def __init__(self, ledger, load_height, persist_height, on_output, on_error=None,
                 min_conf: int = DEFAULT_MIN_CONF, interval: float = DEFAULT_SCAN_INTERVAL,
                 concurrency: int = DEFAULT_TX_CONCURRENCY, timer_factory=threading.Timer):
        if min_conf < 1:
            raise ValueError("min_conf must be at least 1")
        self.ledger = ledger
        self.load_height = load_height
        self.persist_height = persist_height
        self.on_error = on_error
        self.min_conf = min_conf
        self.interval = interval
        self.processor = BlockProcessor(ledger, on_output, concurrency=concurrency)
        self.scanned_height = None
        self.state = ScannerState.IDLE

        self._timer_factory = timer_factory
        self._timer = None
        self._stop_requested = False
        self._lock = threading.Lock()
        self._stopped = threading.Event()

    def _report(self, error: Exception, cause: Exception = None) -> None:
        error.__cause__ = cause
        logger.error(f"[BlockScanner] {error}")
        if self.on_error is not None:
            self.on_error(error)

    def _finish(self) -> None:
        self.state = ScannerState.STOPPING
        if self._stopped.is_set():
            return
        self._stopped.set()
        logger.info("[BlockScanner] Stopped")

    def start(self) -> bool:
        """
        Load the scanned height and run the first scan.

        Returns False if the height could not be loaded, in which case the
        scanner stays idle for good.
        """
        if self._stop_requested:
            self._finish()
            return False

        try:
            height = self.load_height()
        except Exception as e:
            self._report(InitializationError(f"Failed to load height: {e}"), e)
            return False

        self.scanned_height = -1 if height is None else height
        logger.info(f"[BlockScanner] Scanned height loaded: {height}")
        self.scan()
        return True

    def schedule(self) -> None:
        with self._lock:
            if self._stop_requested:
                self._finish()
                return
            if self._timer is not None:
                self._timer.cancel()
            logger.info(f"[BlockScanner] Scanning again in {self.interval}s")
            self._timer = self._timer_factory(self.interval, self.scan)
            self._timer.daemon = True
            self.state = ScannerState.WAITING
            self._timer.start()

    def stop(self) -> None:
        """
        Stop scanning.

        A pending timer is cancelled right away. A scan in progress finishes
        the block it is working on and then stops instead of rescheduling.
        """
        with self._lock:
            self._stop_requested = True
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
                self._finish()
                return
        if self.state == ScannerState.IDLE:
            self._finish()

    def wait(self, timeout: float = None) -> bool:
        return self._stopped.wait(timeout)

    def scan_height(self, n: int) -> None:
        block_hash = self.ledger.block_hash_at(n)
        block = self.ledger.block_by_hash(block_hash)
        self.processor.process_block(block)
        try:
            self.persist_height(n)
        except Exception as e:
            raise StoreError(f"Failed to persist height {n}: {e}") from e
        logger.info(f"[BlockScanner] Finished with block #{n}")
        self.scanned_height = n

    def scan(self) -> None:
        with self._lock:
            self._timer = None
            if self._stop_requested:
                self._finish()
                return
            self.state = ScannerState.SCANNING

        try:
            network_height = self.ledger.block_count()
        except Exception as e:
            self._report(ScanError(f"Failed to get block count from bitcoind: {e}"), e)
            self.schedule()
            return

        logger.debug(f"[BlockScanner] Network height: {network_height}")

        n = self.scanned_height + 1
        while n + (self.min_conf - 1) <= network_height and not self._stop_requested:
            try:
                self.scan_height(n)
            except Exception as e:
                self._report(ScanError(f"Failed to scan block #{n}: {e}"), e)
                break
            n += 1

        self.schedule()
