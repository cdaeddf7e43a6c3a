import asyncio
import json

import httpx
import pytest

from helpers import ADDR_A

from hyperwatch.client import FetchError, HyperliquidClient

CLEARINGHOUSE_STATE = {
    "marginSummary": {
        "accountValue": "15234.56",
        "totalNtlPos": "30000.0",
        "totalRawUsd": "45000.0",
        "totalMarginUsed": "3000.0",
    },
    "crossMarginSummary": {"accountValue": "15234.56"},
    "withdrawable": "12000.0",
    "assetPositions": [
        {
            "type": "oneWay",
            "position": {
                "coin": "BTC",
                "szi": "0.5",
                "leverage": {"type": "cross", "value": 20, "rawUsd": "-29000.0"},
                "entryPx": "58000.0",
                "positionValue": "30000.0",
                "unrealizedPnl": "1000.0",
                "returnOnEquity": "0.69",
                "liquidationPx": "31000.5",
                "marginUsed": "1500.0",
                "maxLeverage": 50,
                "cumFunding": {"allTime": "12.3", "sinceOpen": "4.5", "sinceChange": "1.0"},
            },
        },
        {
            "type": "oneWay",
            "position": {
                "coin": "ETH",
                "szi": "-10.0",
                "leverage": {"type": "isolated", "value": 5},
                "entryPx": "3000.0",
                "positionValue": "29000.0",
                "unrealizedPnl": "not-a-number",
                "returnOnEquity": "0.1",
                "liquidationPx": None,
                "marginUsed": "6000.0",
            },
        },
    ],
    "time": 1714560000000,
}


def client_for(handler) -> HyperliquidClient:
    transport = httpx.MockTransport(handler)
    return HyperliquidClient(api_url="https://api.test/info", client=httpx.AsyncClient(transport=transport))


def fetch(client: HyperliquidClient, address: str):
    async def go():
        try:
            return await client.fetch(address)
        finally:
            await client.aclose()

    return asyncio.run(go())


def test_fetch_parses_snapshot():
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(json.loads(request.content))
        return httpx.Response(200, json=CLEARINGHOUSE_STATE)

    snapshot = fetch(client_for(handler), ADDR_A)

    assert requests == [{"type": "clearinghouseState", "user": ADDR_A}]
    assert snapshot.address == ADDR_A
    assert snapshot.account_value == 15234.56
    assert list(snapshot.positions) == ["BTC", "ETH"]

    btc = snapshot.positions["BTC"]
    assert btc.size == 0.5
    assert btc.leverage.value == 20
    assert btc.leverage.type == "cross"
    assert btc.liquidation_price == 31000.5
    assert btc.cum_funding.since_open == "4.5"

    eth = snapshot.positions["ETH"]
    assert eth.size == -10.0
    assert eth.pnl == 0.0
    assert eth.liquidation_price == 0.0


def test_server_error_raises():
    snapshot_client = client_for(lambda request: httpx.Response(500, text="oops"))
    with pytest.raises(FetchError, match="HTTP 500"):
        fetch(snapshot_client, ADDR_A)


def test_transport_error_raises():
    def handler(request):
        raise httpx.ConnectTimeout("timed out", request=request)

    with pytest.raises(FetchError):
        fetch(client_for(handler), ADDR_A)


def test_undecodable_body_raises():
    with pytest.raises(FetchError):
        fetch(client_for(lambda request: httpx.Response(200, text="<html>")), ADDR_A)


def test_unexpected_payload_raises():
    with pytest.raises(FetchError):
        fetch(client_for(lambda request: httpx.Response(200, json=[1, 2])), ADDR_A)


def test_null_body_yields_error():
    with pytest.raises(FetchError):
        fetch(client_for(lambda request: httpx.Response(200, json=None)), ADDR_A)
