"""
Change detection between the last notified state and a fresh snapshot.

Pure functions only: the same (previous, current) pair always yields the same
report, and nothing here touches stored state.
"""

from decimal import Decimal
from typing import Any, List

from hyperwatch.models import (
    AccountSnapshot,
    AccountState,
    AccountValueChanged,
    Closed,
    DiffEvent,
    DiffReport,
    Opened,
    Resized,
    to_decimal,
)

SIZE_CHANGE_THRESHOLD_PCT = 1.0
ACCOUNT_VALUE_THRESHOLD_PCT = 1.0


def size_change_pct(previous: Any, current: Any) -> Decimal:
    """
    Absolute percentage change of a position size, computed exactly in Decimal.

    Returns 0 when the previous size is zero.
    """
    prev = to_decimal(previous)
    curr = to_decimal(current)
    if prev == 0:
        return Decimal(0)
    return abs(curr - prev) * 100 / abs(prev)


def account_value_change_pct(previous: float, current: float) -> float:
    """Signed percentage change of account value; 0 when the previous value is not positive."""
    if previous <= 0:
        return 0.0
    return (current - previous) * 100 / previous


def detect_changes(
    previous: AccountState,
    current: AccountSnapshot,
    report_account_value_changes: bool = False,
    size_threshold_pct: float = SIZE_CHANGE_THRESHOLD_PCT,
    account_threshold_pct: float = ACCOUNT_VALUE_THRESHOLD_PCT,
) -> DiffReport:
    """
    Compare the last notified state of an address with its current snapshot.

    Opened and closed positions are always reported. A position present in
    both is reported as resized when its size moved by at least
    size_threshold_pct. With report_account_value_changes, an account value
    move of at least account_threshold_pct is reported, but only when no
    position event fired.

    Args:
        previous: Last notified state (empty for a brand-new address)
        current: Freshly fetched snapshot
        report_account_value_changes: Enable the account value event
        size_threshold_pct: Minimum size change for a resize, inclusive
        account_threshold_pct: Minimum account value change, inclusive

    Returns:
        DiffReport, empty when nothing notable changed
    """
    events: List[DiffEvent] = []

    for coin, position in current.positions.items():
        last = previous.positions.get(coin)
        if last is None:
            events.append(Opened(coin=coin, position=position))
            continue

        change_pct = size_change_pct(last.exact_size, position.exact_size)
        if change_pct >= to_decimal(size_threshold_pct):
            events.append(
                Resized(
                    coin=coin,
                    previous_size=last.size,
                    current_size=position.size,
                    change_pct=float(change_pct),
                    position=position,
                )
            )

    for coin, last in previous.positions.items():
        if coin not in current.positions:
            events.append(Closed(coin=coin, position=last))

    if report_account_value_changes and not events:
        change_pct = account_value_change_pct(previous.account_value, current.account_value)
        if abs(change_pct) >= account_threshold_pct:
            events.append(
                AccountValueChanged(
                    previous=previous.account_value,
                    current=current.account_value,
                    change_pct=change_pct,
                )
            )

    return DiffReport(events=tuple(events))
