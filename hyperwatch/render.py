"""
Message rendering for Telegram.

Money and percentages are shown with 2 decimals, sizes with 5. Addresses are
only ever shown shortened.
"""

from datetime import datetime
from typing import List

from hyperwatch.models import (
    AccountSnapshot,
    AccountValueChanged,
    Closed,
    DiffReport,
    Opened,
    Position,
    Resized,
    Subscription,
    to_float,
)

TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"

HELP_TEXT = (
    "👋 Welcome to the Hyperliquid position monitor!\n\n"
    "Commands:\n"
    "/myid - Show your chat ID\n"
    "/subscribe <address> [name] - Subscribe to an address (requires authorization)\n"
    "/unsubscribe <address> - Unsubscribe from an address\n"
    "/list - List your subscriptions\n\n"
    "Super admin commands:\n"
    "/authorize <chat_id> - Authorize a chat\n"
    "/deauthorize <chat_id> - Revoke a chat's authorization"
)

SINGLE_TENANT_HELP_TEXT = (
    "👋 Hyperliquid position monitor (single account mode)\n\n"
    "Commands:\n"
    "/myid - Show your chat ID\n"
    "/list - Show the monitored account"
)


def shorten_address(address: str) -> str:
    if len(address) <= 10:
        return address
    return f"{address[:6]}...{address[-4:]}"


def format_timestamp(timestamp: datetime) -> str:
    return timestamp.strftime(TIMESTAMP_FORMAT)


def position_direction(size: float) -> str:
    return "short" if size < 0 else "long"


def pnl_marker(pnl: float) -> str:
    return "🟢" if pnl >= 0 else "🔴"


def _header(title: str, name: str, address: str, timestamp: datetime) -> List[str]:
    return [
        f"🔄 {title} - {name} ({format_timestamp(timestamp)})",
        "",
        f"💼 Account: {shorten_address(address)}",
    ]


def _position_lines(position: Position, indent: str = "", full: bool = False) -> List[str]:
    size = position.size
    pnl = position.pnl
    leverage = f"{position.leverage.value}x"
    if full and position.leverage.type:
        leverage += f" ({position.leverage.type})"

    lines = [
        f"{indent}🪙 {position.coin} ({position_direction(size)})",
        f"{indent}📈 Size: {abs(size):.5f} (${position.notional:.2f})",
        f"{indent}🏷️ Entry price: ${position.entry_price:.2f}",
        f"{indent}📊 Leverage: {leverage}",
        f"{indent}{pnl_marker(pnl)} PnL: ${pnl:.2f} ({position.roe * 100:.2f}%)",
        f"{indent}⚠️ Liquidation price: ${position.liquidation_price:.2f}",
    ]
    if full:
        lines.append(f"{indent}💸 Margin used: ${position.margin:.2f}")
        lines.append(
            f"{indent}⏳ Funding: ${to_money(position.cum_funding.since_open)} since open, "
            f"${to_money(position.cum_funding.all_time)} all time"
        )
    return lines


def to_money(value: str) -> str:
    return f"{to_float(value):.2f}"


def render_initial_status(name: str, address: str, timestamp: datetime, snapshot: AccountSnapshot) -> str:
    """Full dump of a snapshot, sent once to a new subscriber."""
    lines = _header("Hyperliquid initial positions", name, address, timestamp)
    lines.append(f"💰 Account value: ${snapshot.account_value:.2f}")
    lines.append("")

    if snapshot.positions:
        lines.append("📊 Open positions:")
        lines.append("")
        for position in snapshot.positions.values():
            lines.extend(_position_lines(position, full=True))
            lines.append("")
    else:
        lines.append("No open positions found.")
        lines.append("")

    lines.append("🔔 Monitoring started, you will be notified when positions change.")
    return "\n".join(lines)


def render_changes(
    name: str,
    address: str,
    timestamp: datetime,
    report: DiffReport,
    snapshot: AccountSnapshot,
) -> str:
    """
    Render a non-empty DiffReport.

    Args:
        name: Subscriber's display name for the address
        address: Monitored address
        timestamp: Time of the cycle that detected the changes
        report: Detected events
        snapshot: Snapshot the report was computed from

    Returns:
        Message text
    """
    lines = _header("Hyperliquid position changes", name, address, timestamp)
    lines.append("")

    for event in report:
        if isinstance(event, Opened):
            lines.append(f"🆕 Opened: {event.coin}")
            lines.extend(_position_lines(event.position, indent="   "))
            lines.append("")
        elif isinstance(event, Resized):
            if event.increased:
                lines.append(f"📈 Increased: {event.coin}")
            else:
                lines.append(f"📉 Decreased: {event.coin}")
            lines.append(f"   From: {event.previous_size:.5f}")
            lines.append(f"   To: {event.current_size:.5f}")
            lines.append(f"   Change: {event.change_pct:.2f}%")
            lines.append("")
        elif isinstance(event, Closed):
            lines.append(f"❌ Closed: {event.coin}")
            lines.append("")
        elif isinstance(event, AccountValueChanged):
            sign = "+" if event.change_pct >= 0 else ""
            lines.append("💰 Account value changed")
            lines.append(f"   From: ${event.previous:.2f}")
            lines.append(f"   To: ${event.current:.2f}")
            lines.append(f"   Change: {sign}{event.change_pct:.2f}%")
            lines.append("")

    if report.of_type(AccountValueChanged):
        lines.append(f"📊 Open positions: {len(snapshot.positions)}")

    return "\n".join(lines).rstrip()


def render_subscription_list(subscriptions: List[Subscription]) -> str:
    if not subscriptions:
        return "You have no subscriptions yet."

    lines = ["📋 Your subscriptions:", ""]
    for i, subscription in enumerate(subscriptions, start=1):
        lines.append(f"{i}. {shorten_address(subscription.address)} - {subscription.name}")
    return "\n".join(lines)
