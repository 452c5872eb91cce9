"""
Read-only market and account queries (``POST /info``).
"""
from typing import Any, Dict, List, Optional, Union

from .http_client import HttpClient
from ..models import (
    Candle,
    Fill,
    FundingPayment,
    FundingRate,
    L2Book,
    Meta,
    OpenOrder,
    SpotMeta,
    UserState,
)

INFO_ENDPOINT = "/info"


class InfoAPI:
    """Unsigned queries against the info endpoint."""

    def __init__(self, http: HttpClient):
        self._http = http

    async def query(self, body: Dict[str, Any], response_model: Any = None) -> Any:
        """Issue an arbitrary info request."""
        return await self._http.post(INFO_ENDPOINT, body, response_model)

    async def user_state(self, user: str) -> UserState:
        """Get a user's perpetuals account state."""
        return await self.query({"type": "clearinghouseState", "user": user}, UserState)

    async def open_orders(self, user: str) -> List[OpenOrder]:
        return await self.query({"type": "openOrders", "user": user}, List[OpenOrder])

    async def all_mids(self) -> Dict[str, str]:
        """Get mid prices for all coins."""
        return await self.query({"type": "allMids"}, Dict[str, str])

    async def l2_book(self, coin: str) -> L2Book:
        return await self.query({"type": "l2Book", "coin": coin}, L2Book)

    async def candles(self, coin: str, interval: str, start_time: int, end_time: int) -> List[Candle]:
        """
        Get candles for a coin.

        Args:
            coin: Coin name, e.g. 'BTC'
            interval: Candle interval ('1m', '15m', '1h', '1d', ...)
            start_time: Start of the range in epoch milliseconds
            end_time: End of the range in epoch milliseconds

        Returns:
            Candles in chronological order
        """
        body = {
            "type": "candleSnapshot",
            "req": {
                "coin": coin,
                "interval": interval,
                "startTime": start_time,
                "endTime": end_time,
            },
        }
        return await self.query(body, List[Candle])

    async def user_fills(self, user: str, start_time: Optional[int] = None,
                         end_time: Optional[int] = None) -> List[Fill]:
        """Get a user's fills, optionally restricted to a time range."""
        if start_time is None:
            return await self.query({"type": "userFills", "user": user}, List[Fill])

        body = {"type": "userFillsByTime", "user": user, "startTime": start_time}
        if end_time is not None:
            body["endTime"] = end_time
        return await self.query(body, List[Fill])

    async def user_funding(self, user: str, start_time: int,
                           end_time: Optional[int] = None) -> List[FundingPayment]:
        body = {"type": "userFunding", "user": user, "startTime": start_time}
        if end_time is not None:
            body["endTime"] = end_time
        return await self.query(body, List[FundingPayment])

    async def funding_history(self, coin: str, start_time: int,
                              end_time: Optional[int] = None) -> List[FundingRate]:
        body = {"type": "fundingHistory", "coin": coin, "startTime": start_time}
        if end_time is not None:
            body["endTime"] = end_time
        return await self.query(body, List[FundingRate])

    async def meta(self) -> Meta:
        """Get the perpetuals universe."""
        return await self.query({"type": "meta"}, Meta)

    async def spot_meta(self) -> SpotMeta:
        return await self.query({"type": "spotMeta"}, SpotMeta)

    async def order_status(self, user: str, oid: Union[int, str]) -> Dict[str, Any]:
        """Look up an order by oid or by client order id (cloid)."""
        return await self.query({"type": "orderStatus", "user": user, "oid": oid})

    async def historical_orders(self, user: str) -> List[Dict[str, Any]]:
        return await self.query({"type": "historicalOrders", "user": user})
