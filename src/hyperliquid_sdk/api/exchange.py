"""
State-mutating exchange actions (``POST /exchange``), all signed.
"""
import asyncio
import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional, Union

from .http_client import HttpClient
from .info import InfoAPI
from ..models import (
    ApiResponse,
    CancelByCloidRequest,
    CancelRequest,
    ModifyRequest,
    OrderRequest,
    OrderResponse,
)
from ..security.request_signer import USD_SEND_TYPES, WITHDRAW_TYPES, float_to_wire

logger = logging.getLogger(__name__)

EXCHANGE_ENDPOINT = "/exchange"
SPOT_ASSET_OFFSET = 10000
USD_MICROS = 1_000_000


class ExchangeAPI:
    """Signed trading and account actions.

    Coins are mapped to the exchange's integer asset ids from ``meta`` and
    ``spot_meta``, fetched once on first use.
    """

    def __init__(self, http: HttpClient, info: InfoAPI):
        self._http = http
        self._info = info
        self._assets: Optional[Dict[str, int]] = None
        self._assets_lock = asyncio.Lock()

    @property
    def address(self) -> Optional[str]:
        """Address of the configured signer, if any."""
        return self._http.signer.address if self._http.signer else None

    def set_asset_map(self, assets: Dict[str, int]) -> None:
        """Use a known coin -> asset id mapping instead of fetching it."""
        self._assets = dict(assets)

    async def asset_index(self, coin: str) -> int:
        # Fail on a missing credential before any metadata request goes out
        self._http.require_signer()
        if self._assets is None:
            async with self._assets_lock:
                if self._assets is None:
                    self._assets = await self._load_assets()
        try:
            return self._assets[coin]
        except KeyError:
            raise ValueError(f"Unknown coin: {coin}")

    async def _load_assets(self) -> Dict[str, int]:
        meta, spot_meta = await asyncio.gather(self._info.meta(), self._info.spot_meta())
        assets = {asset.name: index for index, asset in enumerate(meta.universe)}
        for pair in spot_meta.universe:
            assets[pair.name] = SPOT_ASSET_OFFSET + pair.index
        logger.info(f"Loaded {len(assets)} asset ids")
        return assets

    async def submit(self, action: Dict[str, Any], response_model: Any = ApiResponse) -> Any:
        """Sign and submit an arbitrary L1 action."""
        logger.debug(f"Submitting {action.get('type')} action")
        return await self._http.signed_post(EXCHANGE_ENDPOINT, action, response_model)

    async def place_order(self, order: OrderRequest, grouping: str = "na") -> OrderResponse:
        return await self.place_orders([order], grouping)

    async def place_orders(self, orders: List[OrderRequest], grouping: str = "na") -> OrderResponse:
        """
        Place one or more orders in a single action.

        Args:
            orders: Orders to place
            grouping: 'na', 'normalTpsl' or 'positionTpsl'

        Returns:
            OrderResponse with one status per order
        """
        if not orders:
            raise ValueError("At least one order is required")

        wires = [order.to_wire(await self.asset_index(order.coin)) for order in orders]
        action = {"type": "order", "orders": wires, "grouping": grouping}
        return await self.submit(action, OrderResponse)

    async def cancel_order(self, coin: str, oid: int) -> ApiResponse:
        return await self.cancel_orders([CancelRequest(coin=coin, oid=oid)])

    async def cancel_orders(self, cancels: List[CancelRequest]) -> ApiResponse:
        wires = [{"a": await self.asset_index(c.coin), "o": c.oid} for c in cancels]
        return await self.submit({"type": "cancel", "cancels": wires})

    async def cancel_by_cloid(self, coin: str, cloid: str) -> ApiResponse:
        return await self.cancel_by_cloids([CancelByCloidRequest(coin=coin, cloid=cloid)])

    async def cancel_by_cloids(self, cancels: List[CancelByCloidRequest]) -> ApiResponse:
        wires = [{"asset": await self.asset_index(c.coin), "cloid": c.cloid} for c in cancels]
        return await self.submit({"type": "cancelByCloid", "cancels": wires})

    async def modify_order(self, modify: ModifyRequest) -> ApiResponse:
        return await self.modify_orders([modify])

    async def modify_orders(self, modifies: List[ModifyRequest]) -> ApiResponse:
        wires = [
            {"oid": m.oid, "order": m.order.to_wire(await self.asset_index(m.order.coin))}
            for m in modifies
        ]
        return await self.submit({"type": "batchModify", "modifies": wires})

    async def update_leverage(self, coin: str, leverage: int, is_cross: bool = True) -> ApiResponse:
        action = {
            "type": "updateLeverage",
            "asset": await self.asset_index(coin),
            "isCross": is_cross,
            "leverage": leverage,
        }
        return await self.submit(action)

    async def update_isolated_margin(self, coin: str, amount: Union[Decimal, float]) -> ApiResponse:
        """Add (positive) or remove (negative) isolated margin, in USD."""
        action = {
            "type": "updateIsolatedMargin",
            "asset": await self.asset_index(coin),
            "isBuy": True,
            "ntli": int(round(Decimal(str(amount)) * USD_MICROS)),
        }
        return await self.submit(action)

    async def usd_transfer(self, destination: str, amount: Union[Decimal, float]) -> ApiResponse:
        """Send USDC to another address on the exchange."""
        action = {
            "type": "usdSend",
            "destination": destination,
            "amount": float_to_wire(amount),
        }
        return await self._http.signed_user_post(
            EXCHANGE_ENDPOINT, action, USD_SEND_TYPES,
            "HyperliquidTransaction:UsdSend", ApiResponse
        )

    async def withdraw(self, destination: str, amount: Union[Decimal, float]) -> ApiResponse:
        """Withdraw USDC to the bridge destination."""
        action = {
            "type": "withdraw3",
            "destination": destination,
            "amount": float_to_wire(amount),
        }
        return await self._http.signed_user_post(
            EXCHANGE_ENDPOINT, action, WITHDRAW_TYPES,
            "HyperliquidTransaction:Withdraw", ApiResponse
        )

    async def set_referrer(self, code: str) -> ApiResponse:
        return await self.submit({"type": "setReferrer", "code": code})
