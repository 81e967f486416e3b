#!/usr/bin/env python3
"""
Watch bitcoind for payments to pay-to-public-key-hash addresses.

Confirmed payments come from scanning blocks in height order, unconfirmed ones
from the mempool. Every payment is printed to stdout as one JSON line with a
"confirmed" flag.

Usage: python monitor_payments.py [--min-conf=N] [--interval=SECONDS] [--no-mempool]
"""
import sys
import json
import argparse
import logging
import threading
from functools import partial

from block_scanner import ConfirmedScanner
from config import load_config, validate_config
from ledger import LedgerClient
from mempool_scanner import MempoolScanner
from utils import get_last_processed_block, save_last_processed_block

logger = logging.getLogger("monitor_payments")

_print_lock = threading.Lock()

def print_payment(event, confirmed: bool) -> None:
    line = json.dumps(dict(event.to_dict(), confirmed=confirmed))
    with _print_lock:
        print(line, flush=True)

def build_scanners(config: dict, ledger: LedgerClient = None):
    """Create the confirmed scanner and, if enabled, the mempool scanner from a config dict"""
    validate_config(config)
    ledger = ledger or LedgerClient.from_config(config)
    state_file = config["STATE_FILE"]

    confirmed = ConfirmedScanner(
        ledger,
        load_height=partial(get_last_processed_block, state_file),
        persist_height=partial(save_last_processed_block, state_file=state_file),
        on_output=partial(print_payment, confirmed=True),
        min_conf=int(config["MIN_CONF"]),
        interval=float(config["SCAN_INTERVAL"]),
        concurrency=int(config["TX_CONCURRENCY"]),
    )

    unconfirmed = None
    if config["WATCH_MEMPOOL"] == "1":
        unconfirmed = MempoolScanner(
            ledger,
            on_output=partial(print_payment, confirmed=False),
            interval=float(config["MEMPOOL_INTERVAL"]),
        )
    return confirmed, unconfirmed

def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Watch bitcoind for incoming payments")
    parser.add_argument("--min-conf", type=int, default=None, help="Confirmations before a block is scanned")
    parser.add_argument("--interval", type=float, default=None, help="Seconds between block scans")
    parser.add_argument("--state-file", type=str, default=None, help="File holding the last scanned height")
    parser.add_argument("--no-mempool", action="store_true", help="Only report confirmed payments")
    parser.add_argument("--verbose", action="store_true", help="Log every validated output")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO, stream=sys.stderr)

    config = load_config()
    if args.min_conf is not None:
        config["MIN_CONF"] = str(args.min_conf)
    if args.interval is not None:
        config["SCAN_INTERVAL"] = str(args.interval)
    if args.state_file is not None:
        config["STATE_FILE"] = args.state_file
    if args.no_mempool:
        config["WATCH_MEMPOOL"] = "0"

    try:
        confirmed, unconfirmed = build_scanners(config)
    except ValueError as e:
        logger.error(f"[Main] Invalid configuration: {e}")
        return 2

    if unconfirmed is not None:
        unconfirmed.start()

    logger.info("[Main] Payment monitor started. Press Ctrl+C to exit.")
    try:
        if not confirmed.start():
            return 1
        while not confirmed.wait(1):
            pass
    except KeyboardInterrupt:
        logger.info("[Main] Exiting monitor.")
    finally:
        confirmed.stop()
        if unconfirmed is not None:
            unconfirmed.stop(timeout=5)
    return 0

if __name__ == "__main__":
    sys.exit(main())
