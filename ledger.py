"""
Bitcoin Core JSON-RPC client used by the block and mempool scanners.

Every call goes through AuthServiceProxy and failures are translated into the
LedgerError family, so scanners never see socket or JSON-RPC exceptions.
"""
import http.client
import logging
import threading

from bitcoinrpc.authproxy import AuthServiceProxy, JSONRPCException

from errors import TransportError, NotFound, DecodeError
from utils import get_rpc_url

logger = logging.getLogger("ledger")

# bitcoind RPC error codes
RPC_INVALID_ADDRESS_OR_KEY = -5
RPC_INVALID_PARAMETER = -8
RPC_DESERIALIZATION_ERROR = -22

NOT_FOUND_CODES = (RPC_INVALID_ADDRESS_OR_KEY, RPC_INVALID_PARAMETER)

DEFAULT_RPC_TIMEOUT = 30


class LedgerClient:
    """
    Blocking client for the subset of bitcoind RPC the gateway needs.

    AuthServiceProxy keeps a single HTTP connection and cannot be shared
    between threads, so each thread gets its own proxy.
    """

    def __init__(self, url: str = None, timeout: int = DEFAULT_RPC_TIMEOUT, proxy_factory=AuthServiceProxy):
        self.url = url or get_rpc_url()
        self.timeout = timeout
        self._proxy_factory = proxy_factory
        self._local = threading.local()

    @classmethod
    def from_config(cls, config: dict) -> "LedgerClient":
        url = get_rpc_url(
            config.get("BITCOIN_RPC_USER"),
            config.get("BITCOIN_RPC_PASSWORD"),
            config.get("BITCOIN_RPC_HOST"),
            config.get("BITCOIN_RPC_PORT"),
        )
        return cls(url, timeout=int(config.get("RPC_TIMEOUT", DEFAULT_RPC_TIMEOUT)))

    @property
    def rpc(self):
        proxy = getattr(self._local, "proxy", None)
        if proxy is None:
            proxy = self._proxy_factory(self.url, timeout=self.timeout)
            self._local.proxy = proxy
        return proxy

    def _call(self, method: str, *args):
        try:
            return getattr(self.rpc, method)(*args)
        except JSONRPCException as e:
            error = e.error if isinstance(e.error, dict) else {}
            code = error.get("code")
            message = f"{method} failed: {error.get('message', e)} (code {code})"
            if code in NOT_FOUND_CODES:
                raise NotFound(message) from e
            if code == RPC_DESERIALIZATION_ERROR:
                raise DecodeError(message) from e
            raise TransportError(message) from e
        except (OSError, http.client.HTTPException) as e:
            # The connection is unusable after a socket error, reconnect on the next call
            self._local.proxy = None
            logger.debug(f"[Ledger] {method} transport failure: {e!r}")
            raise TransportError(f"{method} failed: {e}") from e

    def block_count(self) -> int:
        return self._call("getblockcount")

    def block_hash_at(self, height: int) -> str:
        return self._call("getblockhash", height)

    def block_by_hash(self, block_hash: str) -> dict:
        return self._call("getblock", block_hash)

    def raw_transaction(self, txid: str) -> str:
        return self._call("getrawtransaction", txid)

    def decode_transaction(self, raw: str) -> dict:
        return self._call("decoderawtransaction", raw)

    def mempool_txids(self) -> list:
        return self._call("getrawmempool")
