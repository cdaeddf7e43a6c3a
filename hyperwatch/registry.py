"""
Shared in-memory state: subscriptions, per-address account states and the
authorized chat set, all guarded by one lock.

Every mutation is mirrored to the Store. Store failures are logged and never
roll back memory, so the running process stays authoritative until the next
successful write.
"""

import logging
import sqlite3
import threading
from typing import Callable, Dict, List, Optional, Set, Tuple

from hyperwatch.models import AccountSnapshot, AccountState, Subscription
from hyperwatch.store import Store

logger = logging.getLogger(__name__)


class Registry:
    def __init__(self, store: Store, super_admin: str = ""):
        self.store = store
        self.super_admin = super_admin
        self._lock = threading.RLock()
        self._subscriptions: Dict[Tuple[str, str], Subscription] = {}
        self._states: Dict[str, AccountState] = {}
        # address -> recipient whose initial fetch may replace the zero state
        self._baseline_owners: Dict[str, str] = {}
        self._authorized: Set[str] = set()
        if super_admin:
            self._authorized.add(super_admin)

    def _persist(self, description: str, write: Callable[[], None]) -> None:
        try:
            write()
        except sqlite3.Error as e:
            logger.error(f"Failed to persist {description}: {e}")

    def load(self):
        """
        Reload all three record sets from the store.

        Must run before polling starts. Account states are loaded only for
        addresses that still have subscribers.
        """
        subscriptions = self.store.load_subscriptions()
        authorized = self.store.load_authorized()

        with self._lock:
            for subscription in subscriptions:
                self._subscriptions[subscription.key] = subscription
                if subscription.address not in self._states:
                    state = self.store.load_account_state(subscription.address)
                    self._states[subscription.address] = state or AccountState()
            self._authorized.update(authorized)

        logger.info(
            f"Loaded {len(subscriptions)} subscriptions for {len(self._states)} addresses, "
            f"{len(authorized)} authorized chats"
        )

    # ========================================================================
    # Access control
    # ========================================================================

    def is_super_admin(self, recipient: str) -> bool:
        return bool(self.super_admin) and recipient == self.super_admin

    def is_authorized(self, recipient: str) -> bool:
        with self._lock:
            return self.is_super_admin(recipient) or recipient in self._authorized

    def authorize(self, recipient: str):
        with self._lock:
            self._authorized.add(recipient)
        self._persist(f"authorization of {recipient}", lambda: self.store.add_authorized(recipient))

    def deauthorize(self, recipient: str) -> bool:
        """Returns False when asked to remove the super admin."""
        if self.is_super_admin(recipient):
            return False
        with self._lock:
            self._authorized.discard(recipient)
        self._persist(f"deauthorization of {recipient}", lambda: self.store.remove_authorized(recipient))
        return True

    # ========================================================================
    # Subscriptions
    # ========================================================================

    def add_subscription(self, subscription: Subscription) -> bool:
        """
        Register a subscription.

        Creates a zero-valued account state when the address is not tracked yet.

        Returns:
            False if the (recipient, address) pair already exists
        """
        with self._lock:
            if subscription.key in self._subscriptions:
                return False
            self._subscriptions[subscription.key] = subscription
            if subscription.address not in self._states:
                self._states[subscription.address] = AccountState()
                self._baseline_owners[subscription.address] = subscription.recipient

        self._persist(
            f"subscription {subscription.recipient}/{subscription.address}",
            lambda: self.store.save_subscription(subscription),
        )
        return True

    def remove_subscription(self, recipient: str, address: str) -> Optional[Subscription]:
        """
        Drop a subscription; the address state goes with its last subscriber.

        Returns:
            The removed subscription, or None if it did not exist
        """
        with self._lock:
            removed = self._subscriptions.pop((recipient, address), None)
            if removed is None:
                return None
            if self._baseline_owners.get(address) == recipient:
                del self._baseline_owners[address]
            orphaned = not self._has_subscribers(address)
            if orphaned:
                self._states.pop(address, None)

        self._persist(
            f"removal of subscription {recipient}/{address}",
            lambda: self.store.delete_subscription(recipient, address),
        )
        if orphaned:
            logger.info(f"No subscribers left for {address}, dropping its state")
            self._persist(f"removal of state for {address}", lambda: self.store.delete_account_state(address))
        return removed

    def subscriptions_for(self, recipient: str) -> List[Subscription]:
        with self._lock:
            found = [s for s in self._subscriptions.values() if s.recipient == recipient]
        return sorted(found, key=lambda s: s.address)

    def snapshot(self) -> List[Subscription]:
        """Copy of all subscriptions, safe to iterate without the lock."""
        with self._lock:
            return list(self._subscriptions.values())

    def _has_subscribers(self, address: str) -> bool:
        return any(s.address == address for s in self._subscriptions.values())

    # ========================================================================
    # Account states
    # ========================================================================

    def get_state(self, address: str) -> Optional[AccountState]:
        with self._lock:
            return self._states.get(address)

    def commit_state(self, snapshot: AccountSnapshot) -> bool:
        """
        Replace the stored state of an address with a snapshot already notified on.

        Skipped if the address lost all its subscribers while the cycle ran.
        """
        address = snapshot.address
        with self._lock:
            if not self._has_subscribers(address):
                logger.info(f"{address} was unsubscribed during the cycle, not storing state")
                return False
            state = AccountState.from_snapshot(snapshot)
            self._states[address] = state
            self._baseline_owners.pop(address, None)

        self._persist(f"state for {address}", lambda: self.store.save_account_state(address, state))
        return True

    def set_baseline(self, recipient: str, snapshot: AccountSnapshot) -> bool:
        """
        Adopt a freshly fetched snapshot as the comparison baseline.

        Only the recipient that brought the address into tracking may do so,
        and only while its zero state is untouched. Recipients that joined
        later, even before that first fetch returned, never replace it.
        """
        address = snapshot.address
        with self._lock:
            if (recipient, address) not in self._subscriptions:
                return False
            if self._baseline_owners.get(address) != recipient:
                return False
            state = AccountState.from_snapshot(snapshot)
            self._states[address] = state
            del self._baseline_owners[address]

        self._persist(f"baseline for {address}", lambda: self.store.save_account_state(address, state))
        return True
