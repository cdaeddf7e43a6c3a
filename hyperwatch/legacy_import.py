#!/usr/bin/env python3
"""
Import data written by the CSV-based HypurrSeeker bot into the SQLite store.

Old files (in data/):
    subscribers.csv: user_id, username, subscribed_at, active
    wallets.csv:     user_id, address, added_at, active
    snapshots.csv:   address, followers_count, timestamp, token, amount[, value_usd]

Active users become authorized chats, their active wallets become
subscriptions, and each followed wallet's latest snapshot becomes its
account state.
"""

import csv
import sys
from collections import defaultdict
from pathlib import Path
from typing import Dict, List, Set

from hyperwatch.config import DEFAULT_DB_PATH, DEFAULT_MONITOR_NAME
from hyperwatch.models import AccountState, Position, Subscription, is_valid_address
from hyperwatch.store import Store


def get_active_subscribers(data_dir: Path) -> Set[str]:
    """Get set of active subscriber user IDs."""
    path = data_dir / "subscribers.csv"
    if not path.exists():
        return set()

    active = set()
    with open(path, "r", newline="") as f:
        reader = csv.DictReader(f)
        for row in reader:
            if row["active"].lower() == "true":
                active.add(str(row["user_id"]).strip())
    return active


def get_active_wallets(data_dir: Path, active_subscribers: Set[str]) -> List[Subscription]:
    """Active wallets of active subscribers, as subscriptions."""
    path = data_dir / "wallets.csv"
    if not path.exists():
        return []

    subscriptions = []
    seen = set()
    with open(path, "r", newline="") as f:
        reader = csv.DictReader(f)
        for row in reader:
            user_id = str(row["user_id"]).strip()
            address = row["address"].strip().lower()
            if row["active"].lower() != "true" or user_id not in active_subscribers:
                continue
            if not is_valid_address(address) or (user_id, address) in seen:
                continue
            seen.add((user_id, address))
            subscriptions.append(Subscription(recipient=user_id, address=address, name=DEFAULT_MONITOR_NAME))
    return subscriptions


def get_latest_snapshots(data_dir: Path) -> Dict[str, AccountState]:
    """Latest snapshot rows per wallet, keyed by lowercased address."""
    path = data_dir / "snapshots.csv"
    if not path.exists():
        return {}

    latest = defaultdict(lambda: {"timestamp": None, "rows": []})
    with open(path, "r", newline="") as f:
        reader = csv.DictReader(f)
        for row in reader:
            address = row["address"].lower()
            timestamp = row.get("timestamp") or ""
            entry = latest[address]
            # Keep only the latest data for each wallet
            if entry["timestamp"] is None or timestamp > entry["timestamp"]:
                entry["timestamp"] = timestamp
                entry["rows"] = [row]
            elif timestamp == entry["timestamp"]:
                entry["rows"].append(row)

    states = {}
    for address, entry in latest.items():
        positions = {}
        for row in entry["rows"]:
            token = row["token"]
            positions[token] = Position(
                coin=token,
                szi=row.get("amount") or "0",
                position_value=row.get("value_usd") or "",
            )
        states[address] = AccountState(positions=positions)
    return states


def migrate(data_dir: Path, db_path: str) -> int:
    """
    Copy the CSV data into the store.

    Returns:
        Number of subscriptions written
    """
    active_subscribers = get_active_subscribers(data_dir)
    print(f"Found {len(active_subscribers)} active subscribers")

    subscriptions = get_active_wallets(data_dir, active_subscribers)
    followed = {s.address for s in subscriptions}
    print(f"Found {len(subscriptions)} subscriptions on {len(followed)} unique wallets")

    snapshots = get_latest_snapshots(data_dir)

    store = Store(db_path)
    try:
        for user_id in sorted(active_subscribers):
            store.add_authorized(user_id)
        for subscription in subscriptions:
            store.save_subscription(subscription)
        for address in sorted(followed):
            state = snapshots.get(address)
            if state is None:
                continue
            store.save_account_state(address, state)
            print(f"Wallet {address[:10]}... imported with {len(state.positions)} positions")
    finally:
        store.close()

    print(f"✓ Import complete! Wrote {len(subscriptions)} subscriptions to {db_path}")
    return len(subscriptions)


if __name__ == "__main__":
    data_dir = Path(sys.argv[1]) if len(sys.argv) > 1 else Path("data")
    db_path = sys.argv[2] if len(sys.argv) > 2 else DEFAULT_DB_PATH
    migrate(data_dir, db_path)
