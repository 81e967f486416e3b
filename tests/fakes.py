"""In-memory fakes for the ledger, timer and height store."""
import threading
import time
from decimal import Decimal

from errors import TransportError, NotFound


HASH160 = "89abcdefabcdefabcdefabcdefabcdefabcdef01"
P2PKH_ASM = f"OP_DUP OP_HASH160 {HASH160} OP_EQUALVERIFY OP_CHECKSIG"


def p2pkh_output(n, value, address="1BoatSLRHtKNngkdXEeobR76b53LETtpyT"):
    return {
        "n": n,
        "value": Decimal(value),
        "scriptPubKey": {"type": "pubkeyhash", "asm": P2PKH_ASM, "addresses": [address]},
    }


def make_tx(txid, outputs, version=2, locktime=0):
    return {"txid": txid, "version": version, "locktime": locktime, "vout": outputs}


class FakeLedger:
    """In-memory stand-in for LedgerClient.

    `blocks` maps height -> list of decoded transactions. Raw transactions are
    the txid itself, decode_transaction looks the decoded form back up.
    """

    def __init__(self, blocks=None, network_height=None, delay=0.0):
        self.blocks = blocks or {}
        self.network_height = max(self.blocks, default=-1) if network_height is None else network_height
        self.mempool = []
        self.delay = delay
        self.delays = {}
        self.calls = []
        self.fail_block_count = False
        self.fail_txids = set()
        self.requested_heights = []
        self.in_flight = 0
        self.max_in_flight = 0
        self._txs = {}
        self._lock = threading.Lock()
        for txs in self.blocks.values():
            for tx in txs:
                self._txs[tx["txid"]] = tx

    def add_block(self, height, txs):
        self.blocks[height] = txs
        self.network_height = max(self.network_height, height)
        for tx in txs:
            self._txs[tx["txid"]] = tx

    def add_mempool_tx(self, tx):
        self._txs[tx["txid"]] = tx
        self.mempool.append(tx["txid"])

    def block_count(self):
        self.calls.append(("getblockcount",))
        if self.fail_block_count:
            raise TransportError("getblockcount failed: connection refused")
        return self.network_height

    def block_hash_at(self, height):
        self.requested_heights.append(height)
        if height > self.network_height or height not in self.blocks:
            raise NotFound("getblockhash failed: Block height out of range (code -8)")
        return f"hash-{height}"

    def block_by_hash(self, block_hash):
        height = int(block_hash.split("-")[1])
        return {"hash": block_hash, "height": height, "tx": [tx["txid"] for tx in self.blocks[height]]}

    def raw_transaction(self, txid):
        with self._lock:
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            delay = self.delays.get(txid, self.delay)
            if delay:
                time.sleep(delay)
            if txid in self.fail_txids:
                raise TransportError(f"getrawtransaction failed for {txid}")
            if txid not in self._txs:
                raise NotFound(f"No such mempool or blockchain transaction {txid}")
            return txid
        finally:
            with self._lock:
                self.in_flight -= 1

    def decode_transaction(self, raw):
        return self._txs[raw]

    def mempool_txids(self):
        return list(self.mempool)


class FakeTimer:
    """Timer double that only fires when the test says so."""

    def __init__(self, interval, function):
        self.interval = interval
        self.function = function
        self.daemon = False
        self.started = False
        self.cancelled = False
        self.fired = False

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self):
        assert self.started and not self.cancelled and not self.fired
        self.fired = True
        self.function()


class TimerFactory:
    def __init__(self):
        self.timers = []

    def __call__(self, interval, function):
        timer = FakeTimer(interval, function)
        self.timers.append(timer)
        return timer

    @property
    def last(self):
        return self.timers[-1]

    @property
    def armed(self):
        return [t for t in self.timers if t.started and not t.cancelled and not t.fired]


class MemoryHeightStore:
    def __init__(self, height=None):
        self.height = height
        self.persisted = []
        self.fail_load = False
        self.fail_persist_at = None

    def load(self):
        if self.fail_load:
            raise OSError("state unavailable")
        return self.height

    def persist(self, height):
        if height == self.fail_persist_at:
            raise OSError("disk full")
        self.persisted.append(height)
        self.height = height
