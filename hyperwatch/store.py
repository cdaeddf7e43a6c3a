import json
import logging
import sqlite3
import threading
from pathlib import Path
from typing import List, Optional, Set

from hyperwatch.models import AccountState, Subscription

logger = logging.getLogger(__name__)


class Store:
    """
    SQLite persistence for subscriptions, account states and authorized chats.

    Every write is an idempotent upsert or delete. Errors surface as
    sqlite3.Error; callers decide whether they are fatal.
    """

    def __init__(self, path: str):
        self.path = str(Path(path))
        self._conn = sqlite3.connect(self.path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.Lock()
        self._init_db()

    def _init_db(self) -> None:
        with self._lock:
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS subscriptions (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    chat_id TEXT NOT NULL,
                    address TEXT NOT NULL,
                    name TEXT NOT NULL,
                    UNIQUE(chat_id, address)
                );

                CREATE TABLE IF NOT EXISTS account_states (
                    address TEXT PRIMARY KEY,
                    account_value REAL,
                    positions TEXT
                );

                CREATE TABLE IF NOT EXISTS authorized_users (
                    chat_id TEXT PRIMARY KEY
                );
                """
            )
            self._conn.commit()

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    # Subscriptions

    def save_subscription(self, subscription: Subscription) -> None:
        with self._lock:
            self._conn.execute(
                "INSERT OR REPLACE INTO subscriptions (chat_id, address, name) VALUES (?, ?, ?)",
                (subscription.recipient, subscription.address, subscription.name),
            )
            self._conn.commit()

    def delete_subscription(self, recipient: str, address: str) -> None:
        with self._lock:
            self._conn.execute(
                "DELETE FROM subscriptions WHERE chat_id = ? AND address = ?",
                (recipient, address),
            )
            self._conn.commit()

    def load_subscriptions(self) -> List[Subscription]:
        with self._lock:
            cur = self._conn.execute("SELECT chat_id, address, name FROM subscriptions ORDER BY id")
            return [
                Subscription(recipient=row["chat_id"], address=row["address"], name=row["name"])
                for row in cur.fetchall()
            ]

    # Account states

    def save_account_state(self, address: str, state: AccountState) -> None:
        positions_json = json.dumps(state.positions_to_dict())
        with self._lock:
            self._conn.execute(
                "INSERT OR REPLACE INTO account_states (address, account_value, positions) VALUES (?, ?, ?)",
                (address, state.account_value, positions_json),
            )
            self._conn.commit()

    def delete_account_state(self, address: str) -> None:
        with self._lock:
            self._conn.execute("DELETE FROM account_states WHERE address = ?", (address,))
            self._conn.commit()

    def load_account_state(self, address: str) -> Optional[AccountState]:
        with self._lock:
            cur = self._conn.execute(
                "SELECT account_value, positions FROM account_states WHERE address = ?",
                (address,),
            )
            row = cur.fetchone()
        if row is None:
            return None

        try:
            positions = json.loads(row["positions"]) if row["positions"] else {}
        except ValueError:
            logger.warning(f"Corrupt positions blob for {address}, starting from an empty baseline")
            positions = {}
        if not isinstance(positions, dict):
            positions = {}
        return AccountState.from_stored(row["account_value"], positions)

    # Authorized chats

    def add_authorized(self, recipient: str) -> None:
        with self._lock:
            self._conn.execute("INSERT OR IGNORE INTO authorized_users (chat_id) VALUES (?)", (recipient,))
            self._conn.commit()

    def remove_authorized(self, recipient: str) -> None:
        with self._lock:
            self._conn.execute("DELETE FROM authorized_users WHERE chat_id = ?", (recipient,))
            self._conn.commit()

    def load_authorized(self) -> Set[str]:
        with self._lock:
            cur = self._conn.execute("SELECT chat_id FROM authorized_users")
            return {row["chat_id"] for row in cur.fetchall()}
