import asyncio
import logging
import time
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from typing import Awaitable, Callable, Dict, List, Set

from hyperwatch.client import FetchError
from hyperwatch.detection import detect_changes
from hyperwatch.models import AccountSnapshot, AccountState, Subscription
from hyperwatch.registry import Registry
from hyperwatch.render import render_changes, render_initial_status, shorten_address

logger = logging.getLogger(__name__)

SendText = Callable[[str, str], Awaitable[bool]]


@dataclass
class CycleResult:
    addresses: int = 0
    changed: int = 0
    failed: int = 0
    notifications_sent: int = 0


def group_by_address(subscriptions: List[Subscription]) -> Dict[str, List[Subscription]]:
    """Group subscriptions so every address is fetched once however many chats follow it."""
    grouped: Dict[str, List[Subscription]] = defaultdict(list)
    for subscription in subscriptions:
        grouped[subscription.address].append(subscription)
    return dict(grouped)


class PositionMonitor:
    """
    Polls every subscribed address and fans detected changes out to its subscribers.

    Only this class replaces account states after a change; the command
    handlers go through subscribe/unsubscribe.
    """

    def __init__(
        self,
        registry: Registry,
        fetcher,
        send_text: SendText,
        polling_interval: int = 30,
        report_account_value_changes: bool = False,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.registry = registry
        self.fetcher = fetcher
        self.send_text = send_text
        self.polling_interval = polling_interval
        self.report_account_value_changes = report_account_value_changes
        self.clock = clock
        self._background: Set[asyncio.Task] = set()

    # ========================================================================
    # Polling
    # ========================================================================

    async def poll_once(self) -> CycleResult:
        """
        Execute one monitoring cycle.

        Returns:
            Summary of what the cycle did
        """
        grouped = group_by_address(self.registry.snapshot())
        result = CycleResult(addresses=len(grouped))

        if not grouped:
            logger.info("No addresses to monitor")
            return result

        for address, subscribers in grouped.items():
            try:
                await self._process_address(address, subscribers, result)
            except FetchError as e:
                logger.error(f"Failed to fetch {address}: {e}")
                result.failed += 1
            except Exception as e:
                logger.error(f"Error monitoring {address}: {e}", exc_info=True)
                result.failed += 1

        return result

    async def _process_address(self, address: str, subscribers: List[Subscription], result: CycleResult):
        current = await self.fetcher.fetch(address)

        previous = self.registry.get_state(address) or AccountState()
        report = detect_changes(
            previous,
            current,
            report_account_value_changes=self.report_account_value_changes,
        )
        if not report:
            logger.debug(f"No changes for {address}")
            return

        result.changed += 1
        timestamp = self.clock()
        for subscription in subscribers:
            message = render_changes(subscription.name, address, timestamp, report, current)
            try:
                if await self.send_text(subscription.recipient, message):
                    result.notifications_sent += 1
            except Exception as e:
                logger.error(f"Error notifying {subscription.recipient} about {address}: {e}", exc_info=True)

        # Committed whether or not every delivery succeeded
        self.registry.commit_state(current)
        logger.info(f"{len(report)} change(s) for {address} sent to {len(subscribers)} subscriber(s)")

    async def run(self):
        """Poll at a fixed interval until cancelled."""
        logger.info(f"Starting monitoring loop (interval: {self.polling_interval}s)")

        while True:
            started = time.monotonic()
            try:
                result = await self.poll_once()
                logger.info(
                    f"Cycle done: {result.addresses} addresses, {result.changed} changed, "
                    f"{result.failed} failed, {result.notifications_sent} notifications"
                )
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Error in monitoring cycle: {e}", exc_info=True)

            elapsed = time.monotonic() - started
            await asyncio.sleep(max(0.0, self.polling_interval - elapsed))

    # ========================================================================
    # Subscribe / Unsubscribe
    # ========================================================================

    def subscribe(self, recipient: str, address: str, name: str) -> bool:
        """
        Register a subscription and send the initial status in the background.

        Returns:
            False if the recipient already follows the address
        """
        subscription = Subscription(recipient=recipient, address=address, name=name)
        if not self.registry.add_subscription(subscription):
            return False

        task = asyncio.create_task(self.send_initial_status(subscription))
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return True

    async def send_initial_status(self, subscription: Subscription) -> bool:
        """
        Fetch once, show the new subscriber everything, and seed the baseline.

        The fetched snapshot becomes the comparison baseline only if this
        subscription brought the address into tracking.
        """
        address = subscription.address
        try:
            snapshot: AccountSnapshot = await self.fetcher.fetch(address)
        except FetchError as e:
            logger.error(f"Initial fetch for {address} failed: {e}")
            await self.send_text(
                subscription.recipient,
                f"Failed to fetch the initial state of {shorten_address(address)}: {e}",
            )
            return False

        message = render_initial_status(subscription.name, address, self.clock(), snapshot)
        await self.send_text(subscription.recipient, message)

        if self.registry.set_baseline(subscription.recipient, snapshot):
            logger.info(f"Baseline set for {address} ({len(snapshot.positions)} positions)")
        return True

    def unsubscribe(self, recipient: str, address: str) -> bool:
        return self.registry.remove_subscription(recipient, address) is not None

    async def close(self):
        for task in list(self._background):
            task.cancel()
        await asyncio.gather(*self._background, return_exceptions=True)
