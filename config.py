#!/usr/bin/env python3
"""
Configuration utility for the Bitcoin payment gateway

This script shows and updates the gateway settings stored in .env: the
bitcoind RPC connection, confirmation depth, scan intervals and where the
scanned height is kept.
"""

import os
import argparse
from dotenv import load_dotenv, set_key

# Default configuration file
CONFIG_FILE = ".env"

DEFAULTS = {
    "BITCOIN_RPC_USER": "",
    "BITCOIN_RPC_PASSWORD": "",
    "BITCOIN_RPC_HOST": "127.0.0.1",
    "BITCOIN_RPC_PORT": "8332",
    "RPC_TIMEOUT": "30",
    "MIN_CONF": "1",
    "SCAN_INTERVAL": "10",
    "TX_CONCURRENCY": "3",
    "MEMPOOL_INTERVAL": "2",
    "WATCH_MEMPOOL": "1",
    "STATE_FILE": "state.json",
}

def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Configure Bitcoin payment gateway settings")

    # Node connection
    parser.add_argument("--rpc-host", type=str, default=None, help="bitcoind RPC host (default: 127.0.0.1)")
    parser.add_argument("--rpc-port", type=int, default=None, help="bitcoind RPC port (default: 8332)")
    parser.add_argument("--rpc-user", type=str, default=None, help="bitcoind RPC user")
    parser.add_argument("--rpc-password", type=str, default=None, help="bitcoind RPC password")

    # Scanning options
    parser.add_argument("--min-conf", type=int, default=None,
                        help="Confirmations before a block is scanned (default: 1)")
    parser.add_argument("--interval", type=float, default=None,
                        help="Seconds between block scans (default: 10)")
    parser.add_argument("--concurrency", type=int, default=None,
                        help="Transactions fetched in parallel per block (default: 3)")
    parser.add_argument("--state-file", type=str, default=None,
                        help="File holding the last scanned height (default: state.json)")
    parser.add_argument("--no-mempool", action="store_true",
                        help="Do not watch unconfirmed transactions")

    # Output options
    parser.add_argument("--show", action="store_true",
                        help="Show current configuration")
    parser.add_argument("--reset", action="store_true",
                        help="Reset to default configuration")

    return parser.parse_args(argv)

def load_config(config_file: str = CONFIG_FILE) -> dict:
    """Load the current configuration from the .env file and environment"""
    load_dotenv(config_file)
    return {key: os.getenv(key, default) for key, default in DEFAULTS.items()}

def validate_config(config: dict) -> dict:
    """Check numeric settings, raising ValueError with the offending key"""
    checks = {
        "MIN_CONF": (int, 1),
        "TX_CONCURRENCY": (int, 1),
        "RPC_TIMEOUT": (int, 1),
        "SCAN_INTERVAL": (float, 0),
        "MEMPOOL_INTERVAL": (float, 0),
    }
    for key, (kind, minimum) in checks.items():
        try:
            value = kind(config[key])
        except (TypeError, ValueError):
            raise ValueError(f"{key} must be a number, got {config[key]!r}")
        if value < minimum:
            raise ValueError(f"{key} must be at least {minimum}, got {value}")
    return config

def save_config(config, config_file: str = CONFIG_FILE):
    """Save configuration to .env file"""
    for key, value in config.items():
        set_key(config_file, key, str(value))

def show_config(config):
    """Display the current configuration in a readable format"""
    print("\n=== Bitcoin Payment Gateway Configuration ===")
    print(f"bitcoind RPC: {config['BITCOIN_RPC_USER'] or '<no user>'}@{config['BITCOIN_RPC_HOST']}:{config['BITCOIN_RPC_PORT']}")
    print(f"RPC timeout: {config['RPC_TIMEOUT']}s")
    print(f"Minimum confirmations: {config['MIN_CONF']}")
    print(f"Scan interval: {config['SCAN_INTERVAL']}s")
    print(f"Transaction concurrency: {config['TX_CONCURRENCY']}")
    print(f"Mempool watching: {'Enabled' if config['WATCH_MEMPOOL'] == '1' else 'Disabled'}")
    print(f"State file: {config['STATE_FILE']}")
    print("=============================================\n")

def main(argv=None):
    args = parse_args(argv)

    # Create config file if it doesn't exist
    if not os.path.exists(CONFIG_FILE):
        open(CONFIG_FILE, 'a').close()

    # Load existing config
    config = load_config()

    # Handle reset
    if args.reset:
        config = dict(DEFAULTS)
        save_config(config)
        print("Configuration reset to defaults.")

    updates = {
        "BITCOIN_RPC_HOST": args.rpc_host,
        "BITCOIN_RPC_PORT": args.rpc_port,
        "BITCOIN_RPC_USER": args.rpc_user,
        "BITCOIN_RPC_PASSWORD": args.rpc_password,
        "MIN_CONF": args.min_conf,
        "SCAN_INTERVAL": args.interval,
        "TX_CONCURRENCY": args.concurrency,
        "STATE_FILE": args.state_file,
    }
    changed = {key: str(value) for key, value in updates.items() if value is not None}
    if args.no_mempool:
        changed["WATCH_MEMPOOL"] = "0"
    config.update(changed)

    try:
        validate_config(config)
    except ValueError as e:
        print(f"Invalid configuration: {e}")
        return 1

    # Save the updated configuration
    save_config(config)

    # Show current config if requested or if changes were made
    if args.show or changed:
        show_config(config)
    return 0

if __name__ == "__main__":
    raise SystemExit(main())
