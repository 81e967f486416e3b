import os
import json
import logging
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from dotenv import load_dotenv

from errors import StoreError

logger = logging.getLogger("utils")

# Load environment variables from .env
load_dotenv()

SATOSHI = Decimal("0.00000001")
DEFAULT_STATE_FILE = "state.json"

def get_rpc_url(user: str = None, password: str = None, host: str = None, port: str = None) -> str:
    """
    Build the bitcoind RPC URL, falling back to the BITCOIN_RPC_* variables from .env
    """
    user = user or os.getenv("BITCOIN_RPC_USER")
    password = password or os.getenv("BITCOIN_RPC_PASSWORD")
    host = host or os.getenv("BITCOIN_RPC_HOST", "127.0.0.1")
    port = port or os.getenv("BITCOIN_RPC_PORT", "8332")
    return f"http://{user}:{password}@{host}:{port}"

def format_btc_value(value) -> str:
    """
    Format an amount in BTC as a fixed 8 decimal string.

    python-bitcoinrpc parses amounts as Decimal already. Floats are converted
    through their shortest repr so 0.1 stays 0.10000000.
    """
    if isinstance(value, float):
        value = repr(value)
    try:
        return f"{Decimal(value).quantize(SATOSHI):f}"
    except InvalidOperation as e:
        raise ValueError(f"invalid amount {value!r}") from e

def get_last_processed_block(state_file: str = DEFAULT_STATE_FILE) -> int | None:
    """
    Load the last processed block height from a state file.

    Returns None when there is no state yet. An unreadable state file raises
    StoreError.
    """
    if not os.path.isfile(state_file):
        logger.info(f"No state file at {state_file}")
        return None

    if os.path.getsize(state_file) == 0:
        logger.info("State file exists but is empty")
        return None

    try:
        with open(state_file, "r") as f:
            state = json.load(f)
    except (OSError, ValueError) as e:
        raise StoreError(f"Failed to load state file {state_file}: {e}") from e

    height = state.get("last_block_height")
    if height is not None and (not isinstance(height, int) or isinstance(height, bool)):
        raise StoreError(f"Invalid last_block_height in {state_file}: {height!r}")
    return height

def save_last_processed_block(block_height: int, state_file: str = DEFAULT_STATE_FILE) -> None:
    """
    Save the last processed block height to a state file
    """
    state = {}
    if os.path.isfile(state_file) and os.path.getsize(state_file) > 0:
        try:
            with open(state_file, "r") as f:
                state = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"Overwriting unreadable state file {state_file}: {e}")
            state = {}

    state["last_block_height"] = block_height
    state["last_updated"] = datetime.now(timezone.utc).isoformat()

    # Write to a sibling file, then swap it in
    tmp_file = f"{state_file}.tmp"
    try:
        with open(tmp_file, "w") as f:
            json.dump(state, f, indent=2)
        os.replace(tmp_file, state_file)
    except OSError as e:
        raise StoreError(f"Failed to save state: {e}") from e
    logger.debug(f"Saved last processed block height: {block_height}")
