"""
Exception types raised by the payment gateway.

Fatal errors stop a scanner from starting, everything else is reported on the
error channel and retried on the next scan.
"""


class GatewayError(Exception):
    """Base class for all payment gateway errors"""


class InitializationError(GatewayError):
    """The scanned height could not be loaded, the scanner never starts"""


class ScanError(GatewayError):
    """A scan tick failed, it will be retried from the same height"""


class LedgerError(GatewayError):
    pass


class TransportError(LedgerError):
    """The node could not be reached or returned an RPC error"""


class NotFound(LedgerError):
    pass


class DecodeError(LedgerError):
    pass


class StoreError(GatewayError):
    """Loading or persisting the scanned height failed"""


class ValidationError(GatewayError):
    pass


class OutputValidationError(ValidationError):
    pass


class TransactionValidationError(ValidationError):
    def __init__(self, message: str, output_index: int = None):
        super().__init__(message)
        self.output_index = output_index


class BlockProcessingError(GatewayError):
    def __init__(self, txid: str, cause: Exception):
        super().__init__(f"failed to process {txid}: {cause}")
        self.txid = txid
        self.cause = cause
