from typing import Dict, List, Tuple, Union

from hyperwatch.client import FetchError
from hyperwatch.models import AccountSnapshot, Position

ADDR_A = "0x" + "ab" * 20
ADDR_B = "0x" + "cd" * 20


def make_position(coin: str, szi: str, **fields) -> Position:
    raw = {
        "coin": coin,
        "szi": szi,
        "leverage": {"type": "cross", "value": 10, "rawUsd": "-100.0"},
        "entryPx": "100.0",
        "positionValue": "1000.0",
        "unrealizedPnl": "12.5",
        "returnOnEquity": "0.125",
        "liquidationPx": "80.0",
        "marginUsed": "100.0",
        "maxLeverage": 50,
        "cumFunding": {"allTime": "1.5", "sinceOpen": "0.5", "sinceChange": "0.1"},
    }
    raw.update(fields)
    return Position.from_api(raw)


def make_snapshot(address: str, sizes: Dict[str, str], account_value: float = 10_000.0) -> AccountSnapshot:
    positions = {coin: make_position(coin, szi) for coin, szi in sizes.items()}
    return AccountSnapshot(address=address, positions=positions, account_value=account_value)


class FakeFetcher:
    def __init__(self, snapshots: Dict[str, Union[AccountSnapshot, Exception]] = None):
        self.snapshots = dict(snapshots or {})
        self.calls: List[str] = []

    async def fetch(self, address: str) -> AccountSnapshot:
        self.calls.append(address)
        result = self.snapshots.get(address)
        if result is None:
            raise FetchError(f"no data for {address}")
        if isinstance(result, Exception):
            raise result
        return result


class FakeSender:
    def __init__(self, failing=(), raising=()):
        self.failing = set(failing)
        self.raising = set(raising)
        self.sent: List[Tuple[str, str]] = []

    async def send_text(self, recipient: str, text: str) -> bool:
        if recipient in self.raising:
            raise RuntimeError(f"transport broke for {recipient}")
        if recipient in self.failing:
            return False
        self.sent.append((recipient, text))
        return True

    def to(self, recipient: str) -> List[str]:
        return [text for chat, text in self.sent if chat == recipient]
