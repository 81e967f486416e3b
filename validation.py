"""
Structural validation of decoded transactions.

Only standard pay-to-public-key-hash outputs produce payments. Other output
types are skipped, but an output that claims to be pubkeyhash and does not
look like one is an error.
"""
import re
import logging
from dataclasses import dataclass
from decimal import Decimal

from errors import OutputValidationError, TransactionValidationError
from utils import format_btc_value

logger = logging.getLogger("validation")

SUPPORTED_TX_VERSIONS = (1, 2)
P2PKH_TYPE = "pubkeyhash"
P2PKH_ASM = re.compile(r"^OP_DUP OP_HASH160 [0-9a-f]{40} OP_EQUALVERIFY OP_CHECKSIG$")


@dataclass(frozen=True)
class PaymentEvent:
    txid: str
    address: str
    value: str
    output_index: int

    @property
    def key(self) -> tuple:
        """Stable identity, the same output seen twice has the same key"""
        return (self.txid, self.output_index)

    def to_dict(self) -> dict:
        return {
            "txId": self.txid,
            "address": self.address,
            "value": self.value,
            "outputIndex": self.output_index,
        }


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_number(value) -> bool:
    return isinstance(value, (int, float, Decimal)) and not isinstance(value, bool)


def _addresses(script_pub_key: dict) -> list | None:
    # bitcoind >= 22 reports a single "address" instead of "addresses"
    if "addresses" in script_pub_key:
        return script_pub_key["addresses"]
    if "address" in script_pub_key:
        return [script_pub_key["address"]]
    return None


def process_output(txid: str, output: dict) -> PaymentEvent | None:
    """
    Validate one transaction output.

    Returns a PaymentEvent for a standard pubkeyhash output, None for an
    output type that is ignored, and raises OutputValidationError otherwise.
    """
    index = output.get("n")
    if not _is_int(index):
        raise OutputValidationError("output index missing")
    if index < 0:
        raise OutputValidationError("output index < 0")

    value = output.get("value")
    if not _is_number(value):
        raise OutputValidationError("output value missing")
    if value < 0:
        raise OutputValidationError("output value < 0")

    script_pub_key = output.get("scriptPubKey")
    if script_pub_key is None:
        raise OutputValidationError("scriptPubKey missing")

    script_type = script_pub_key.get("type")
    if script_type != P2PKH_TYPE:
        logger.debug(f"ignoring non-pubkeyhash ({script_type or '<none>'}) of {txid}:{index}")
        return None

    asm = script_pub_key.get("asm")
    if not asm:
        raise OutputValidationError("script missing")
    if not P2PKH_ASM.match(asm):
        raise OutputValidationError(f"non-standard transaction {asm}")

    addresses = _addresses(script_pub_key)
    if addresses is None:
        raise OutputValidationError("addresses missing from scriptPubKey")
    if len(addresses) != 1:
        raise OutputValidationError(f"unexpected number of addresses {len(addresses)}")

    event = PaymentEvent(
        txid=txid,
        address=addresses[0],
        value=format_btc_value(value),
        output_index=index,
    )
    logger.debug(f"{event.value} to {event.address}")
    return event


def process_tx(tx: dict) -> list[PaymentEvent]:
    """
    Validate a decoded transaction and return the payments it contains.

    Unsupported versions are ignored and yield no payments. The first invalid
    output fails the whole transaction.
    """
    txid = tx.get("txid")
    if not txid:
        raise TransactionValidationError("txid missing")

    version = tx.get("version")
    if version not in SUPPORTED_TX_VERSIONS or isinstance(version, bool):
        logger.debug(f"ignoring tx {txid} with version {version}")
        return []

    locktime = tx.get("locktime", 0)
    if locktime < 0:
        raise TransactionValidationError(f"unexpected locktime {locktime}")

    events = []
    for output in tx.get("vout") or []:
        try:
            event = process_output(txid, output)
        except OutputValidationError as e:
            index = output.get("n")
            raise TransactionValidationError(f"failed to process output #{index}: {e}", output_index=index) from e
        if event is not None:
            events.append(event)
    return events
