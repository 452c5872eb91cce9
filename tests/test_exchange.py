"""Tests for the info and exchange facades."""
import json
from decimal import Decimal

import pytest

from hyperliquid_sdk.api.exchange import ExchangeAPI
from hyperliquid_sdk.api.info import InfoAPI
from hyperliquid_sdk.exceptions import InvalidCredentialError
from hyperliquid_sdk.models import (
    LimitOrderType,
    ModifyRequest,
    OrderRequest,
    OrderType,
    TriggerOrderType,
)
from hyperliquid_sdk.security.request_signer import RequestSigner

from conftest import TEST_PRIVATE_KEY

META = {"universe": [{"name": "BTC", "szDecimals": 5, "maxLeverage": 50},
                     {"name": "ETH", "szDecimals": 4, "maxLeverage": 50}]}
SPOT_META = {"universe": [{"name": "PURR/USDC", "tokens": [1, 0], "index": 0, "isCanonical": True}],
             "tokens": [{"name": "USDC", "szDecimals": 8, "weiDecimals": 8, "index": 0}]}
ORDER_OK = {"status": "ok", "response": {"type": "order", "data": {"statuses": [
    {"resting": {"oid": 77738308}},
    {"filled": {"totalSz": "0.02", "avgPx": "1891.4", "oid": 77747314}},
    {"error": "Order must have minimum value of $10."},
]}}}
DEFAULT_OK = {"status": "ok", "response": {"type": "default"}}
USER_STATE = {
    "marginSummary": {"accountValue": "1000.5", "totalMarginUsed": "100", "totalNtlPos": "500",
                      "totalRawUsd": "1500"},
    "assetPositions": [{"type": "oneWay", "position": {
        "coin": "BTC", "szi": "0.01", "entryPx": "50000", "unrealizedPnl": "5",
        "leverage": {"type": "cross", "value": 10}}}],
    "withdrawable": "900",
    "time": 1700000000000,
}


def exchange_handler(url, body):
    if url.endswith("/info"):
        if body["type"] == "meta":
            return 200, json.dumps(META)
        if body["type"] == "spotMeta":
            return 200, json.dumps(SPOT_META)
        return 400, "unknown info request"
    if body["action"]["type"] == "order":
        return 200, json.dumps(ORDER_OK)
    return 200, json.dumps(DEFAULT_OK)


@pytest.fixture
def trading(make_http_client, signer):
    http, session = make_http_client(handler=exchange_handler, signer=signer)
    info = InfoAPI(http)
    return ExchangeAPI(http, info), session


def exchange_calls(session):
    return [call["body"] for call in session.calls if call["url"].endswith("/exchange")]


@pytest.mark.asyncio
class TestInfoAPI:
    """Test the InfoAPI class."""

    async def test_user_state(self, make_http_client):
        http, session = make_http_client([(200, json.dumps(USER_STATE))])

        state = await InfoAPI(http).user_state("0xabc")

        assert session.calls[0]["body"] == {"type": "clearinghouseState", "user": "0xabc"}
        assert state.margin_summary.account_value == Decimal("1000.5")
        assert state.asset_positions[0].position.coin == "BTC"
        assert state.asset_positions[0].position.leverage.value == 10

    async def test_candles_request(self, make_http_client):
        http, session = make_http_client([(200, "[]")])

        assert await InfoAPI(http).candles("ETH", "15m", 1, 2) == []
        assert session.calls[0]["body"] == {
            "type": "candleSnapshot",
            "req": {"coin": "ETH", "interval": "15m", "startTime": 1, "endTime": 2},
        }

    async def test_user_fills_by_time(self, make_http_client):
        http, session = make_http_client([(200, "[]")])
        info = InfoAPI(http)

        await info.user_fills("0xabc")
        await info.user_fills("0xabc", start_time=10, end_time=20)

        assert session.calls[0]["body"] == {"type": "userFills", "user": "0xabc"}
        assert session.calls[1]["body"] == {"type": "userFillsByTime", "user": "0xabc",
                                            "startTime": 10, "endTime": 20}

    async def test_l2_book(self, make_http_client):
        book = {"coin": "BTC", "time": 1, "levels": [[{"px": "49999", "sz": "1.2", "n": 3}],
                                                     [{"px": "50001", "sz": "0.4", "n": 1}]]}
        http, _ = make_http_client([(200, json.dumps(book))])

        result = await InfoAPI(http).l2_book("BTC")

        assert result.bids[0].px == Decimal("49999")
        assert result.asks[0].n == 1


@pytest.mark.asyncio
class TestExchangeAPI:
    """Test the ExchangeAPI class."""

    async def test_place_orders(self, trading):
        exchange, session = trading
        orders = [
            OrderRequest(coin="BTC", is_buy=True, sz=Decimal("0.1"), limit_px=Decimal("50000")),
            OrderRequest(coin="ETH", is_buy=False, sz="1.5", limit_px="1891.4", reduce_only=True,
                         order_type=OrderType(limit=LimitOrderType(tif="Ioc")),
                         cloid="0x00000000000000000000000000000001"),
            OrderRequest(coin="BTC", is_buy=False, sz="0.1", limit_px="45000",
                         order_type=OrderType(trigger=TriggerOrderType(
                             trigger_px="45500", is_market=True, tpsl="sl"))),
        ]

        response = await exchange.place_orders(orders)

        action = exchange_calls(session)[0]["action"]
        assert action == {
            "type": "order",
            "orders": [
                {"a": 0, "b": True, "p": "50000", "s": "0.1", "r": False, "t": {"limit": {"tif": "Gtc"}}},
                {"a": 1, "b": False, "p": "1891.4", "s": "1.5", "r": True, "t": {"limit": {"tif": "Ioc"}},
                 "c": "0x00000000000000000000000000000001"},
                {"a": 0, "b": False, "p": "45000", "s": "0.1", "r": False,
                 "t": {"trigger": {"isMarket": True, "triggerPx": "45500", "tpsl": "sl"}}},
            ],
            "grouping": "na",
        }
        assert response.statuses[0].resting.oid == 77738308
        assert response.statuses[1].filled.avg_px == Decimal("1891.4")
        assert response.statuses[2].error.startswith("Order must have")

    async def test_asset_ids_loaded_once(self, trading):
        exchange, session = trading

        await exchange.cancel_order("ETH", 42)
        await exchange.cancel_by_cloid("PURR/USDC", "0x00000000000000000000000000000002")

        info_calls = [c for c in session.calls if c["url"].endswith("/info")]
        assert len(info_calls) == 2
        cancel, by_cloid = exchange_calls(session)
        assert cancel["action"] == {"type": "cancel", "cancels": [{"a": 1, "o": 42}]}
        assert by_cloid["action"] == {
            "type": "cancelByCloid",
            "cancels": [{"asset": 10000, "cloid": "0x00000000000000000000000000000002"}],
        }

    async def test_unknown_coin(self, trading):
        exchange, _ = trading
        with pytest.raises(ValueError):
            await exchange.cancel_order("DOGE", 1)

    async def test_modify_order(self, trading):
        exchange, session = trading
        exchange.set_asset_map({"BTC": 0})

        await exchange.modify_order(ModifyRequest(
            oid=123, order=OrderRequest(coin="BTC", is_buy=True, sz="0.2", limit_px="49000")))

        action = exchange_calls(session)[0]["action"]
        assert action["type"] == "batchModify"
        assert action["modifies"][0]["oid"] == 123
        assert action["modifies"][0]["order"]["p"] == "49000"
        assert all(c["url"].endswith("/exchange") for c in session.calls)

    async def test_update_leverage_and_margin(self, trading):
        exchange, session = trading
        exchange.set_asset_map({"ETH": 1})

        result = await exchange.update_leverage("ETH", 5, is_cross=False)
        await exchange.update_isolated_margin("ETH", 2.5)

        assert result.ok
        leverage, margin = exchange_calls(session)
        assert leverage["action"] == {"type": "updateLeverage", "asset": 1, "isCross": False, "leverage": 5}
        assert margin["action"] == {"type": "updateIsolatedMargin", "asset": 1, "isBuy": True, "ntli": 2500000}

    async def test_usd_transfer(self, make_http_client):
        signer = RequestSigner(TEST_PRIVATE_KEY, is_mainnet=False)
        http, session = make_http_client(handler=exchange_handler, signer=signer)
        exchange = ExchangeAPI(http, InfoAPI(http))
        destination = "0x" + "22" * 20

        await exchange.usd_transfer(destination, 12.5)

        body = session.calls[0]["body"]
        action = body["action"]
        assert action["type"] == "usdSend"
        assert action["destination"] == destination
        assert action["amount"] == "12.5"
        assert action["hyperliquidChain"] == "Testnet"
        assert body["nonce"] == action["time"]

    async def test_signed_action_requires_key(self, make_http_client):
        http, session = make_http_client(handler=exchange_handler)
        exchange = ExchangeAPI(http, InfoAPI(http))

        with pytest.raises(InvalidCredentialError):
            await exchange.place_order(
                OrderRequest(coin="BTC", is_buy=True, sz="0.1", limit_px="50000"))
        with pytest.raises(InvalidCredentialError):
            await exchange.set_referrer("CODE")

        assert session.calls == []
        assert exchange.address is None
