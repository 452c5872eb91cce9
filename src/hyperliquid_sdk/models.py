"""
Request and response models for the Hyperliquid REST API.

Field names follow Python conventions; the exchange's wire names are aliases.
"""
from decimal import Decimal
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .security.request_signer import float_to_wire


class WireModel(BaseModel):
    """Base model accepting wire aliases and unknown extra fields."""
    model_config = ConfigDict(populate_by_name=True, extra="allow")


# ---------------------------------------------------------------------------
# Account state
# ---------------------------------------------------------------------------

class Leverage(WireModel):
    type: str
    value: int
    raw_usd: Optional[Decimal] = Field(None, alias="rawUsd")


class CumFunding(WireModel):
    all_time: Decimal = Field(alias="allTime")
    since_open: Decimal = Field(alias="sinceOpen")
    since_change: Decimal = Field(alias="sinceChange")


class Position(WireModel):
    coin: str
    szi: Decimal
    entry_px: Optional[Decimal] = Field(None, alias="entryPx")
    leverage: Optional[Leverage] = None
    unrealized_pnl: Decimal = Field(Decimal("0"), alias="unrealizedPnl")
    position_value: Decimal = Field(Decimal("0"), alias="positionValue")
    margin_used: Decimal = Field(Decimal("0"), alias="marginUsed")
    liquidation_px: Optional[Decimal] = Field(None, alias="liquidationPx")
    max_leverage: Optional[int] = Field(None, alias="maxLeverage")
    cum_funding: Optional[CumFunding] = Field(None, alias="cumFunding")


class AssetPosition(WireModel):
    position: Position
    type: str = "oneWay"


class MarginSummary(WireModel):
    account_value: Decimal = Field(alias="accountValue")
    total_margin_used: Decimal = Field(alias="totalMarginUsed")
    total_ntl_pos: Decimal = Field(alias="totalNtlPos")
    total_raw_usd: Decimal = Field(alias="totalRawUsd")


class UserState(WireModel):
    """Perpetuals account snapshot (``clearinghouseState``)."""
    margin_summary: MarginSummary = Field(alias="marginSummary")
    cross_margin_summary: Optional[MarginSummary] = Field(None, alias="crossMarginSummary")
    asset_positions: List[AssetPosition] = Field(default_factory=list, alias="assetPositions")
    withdrawable: Optional[Decimal] = None
    cross_maintenance_margin_used: Optional[Decimal] = Field(None, alias="crossMaintenanceMarginUsed")
    time: Optional[int] = None


class OpenOrder(WireModel):
    coin: str
    limit_px: Decimal = Field(alias="limitPx")
    oid: int
    side: str
    sz: Decimal
    timestamp: int
    orig_sz: Optional[Decimal] = Field(None, alias="origSz")
    cloid: Optional[str] = None
    reduce_only: Optional[bool] = Field(None, alias="reduceOnly")
    order_type: Optional[str] = Field(None, alias="orderType")


class Fill(WireModel):
    coin: str
    px: Decimal
    sz: Decimal
    side: str
    time: int
    start_position: Optional[Decimal] = Field(None, alias="startPosition")
    dir: Optional[str] = None
    closed_pnl: Decimal = Field(Decimal("0"), alias="closedPnl")
    hash: Optional[str] = None
    oid: int
    crossed: Optional[bool] = None
    fee: Decimal = Decimal("0")
    tid: Optional[int] = None
    fee_token: Optional[str] = Field(None, alias="feeToken")


class FundingDelta(WireModel):
    coin: str
    funding_rate: Decimal = Field(alias="fundingRate")
    szi: Decimal
    type: str = "funding"
    usdc: Decimal


class FundingPayment(WireModel):
    """One entry of a user's funding history."""
    time: int
    hash: Optional[str] = None
    delta: FundingDelta


class FundingRate(WireModel):
    """One entry of a coin's funding rate history."""
    coin: str
    funding_rate: Decimal = Field(alias="fundingRate")
    premium: Optional[Decimal] = None
    time: int


# ---------------------------------------------------------------------------
# Market data
# ---------------------------------------------------------------------------

class L2Level(WireModel):
    px: Decimal
    sz: Decimal
    n: int


class L2Book(WireModel):
    coin: str
    time: int
    levels: List[List[L2Level]]

    @property
    def bids(self) -> List[L2Level]:
        return self.levels[0] if self.levels else []

    @property
    def asks(self) -> List[L2Level]:
        return self.levels[1] if len(self.levels) > 1 else []


class Candle(WireModel):
    open_time: int = Field(alias="t")
    close_time: int = Field(alias="T")
    coin: str = Field(alias="s")
    interval: str = Field(alias="i")
    open: Decimal = Field(alias="o")
    close: Decimal = Field(alias="c")
    high: Decimal = Field(alias="h")
    low: Decimal = Field(alias="l")
    volume: Decimal = Field(alias="v")
    trades: int = Field(0, alias="n")


class AssetMeta(WireModel):
    name: str
    sz_decimals: int = Field(alias="szDecimals")
    max_leverage: Optional[int] = Field(None, alias="maxLeverage")
    only_isolated: Optional[bool] = Field(None, alias="onlyIsolated")


class Meta(WireModel):
    """Perpetuals universe; an asset's index in ``universe`` is its asset id."""
    universe: List[AssetMeta]


class SpotToken(WireModel):
    name: str
    sz_decimals: int = Field(alias="szDecimals")
    wei_decimals: Optional[int] = Field(None, alias="weiDecimals")
    index: int
    token_id: Optional[str] = Field(None, alias="tokenId")


class SpotPair(WireModel):
    name: str
    tokens: List[int]
    index: int
    is_canonical: Optional[bool] = Field(None, alias="isCanonical")


class SpotMeta(WireModel):
    universe: List[SpotPair]
    tokens: List[SpotToken] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Action responses
# ---------------------------------------------------------------------------

class RestingOrder(WireModel):
    oid: int
    cloid: Optional[str] = None


class FilledOrder(WireModel):
    total_sz: Decimal = Field(alias="totalSz")
    avg_px: Decimal = Field(alias="avgPx")
    oid: int


class OrderStatus(WireModel):
    resting: Optional[RestingOrder] = None
    filled: Optional[FilledOrder] = None
    error: Optional[str] = None


class OrderResponseData(WireModel):
    statuses: List[OrderStatus] = Field(default_factory=list)


class OrderResponseBody(WireModel):
    type: str
    data: Optional[OrderResponseData] = None


class OrderResponse(WireModel):
    """Acknowledgement for order placement."""
    status: str
    response: OrderResponseBody

    @property
    def statuses(self) -> List[OrderStatus]:
        if self.response.data is None:
            return []
        return self.response.data.statuses


class ApiResponse(WireModel):
    """Generic acknowledgement for exchange actions."""
    status: str
    response: Any = None

    @property
    def ok(self) -> bool:
        return self.status == "ok"


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------

class LimitOrderType(WireModel):
    tif: Literal["Gtc", "Ioc", "Alo"] = "Gtc"


class TriggerOrderType(WireModel):
    trigger_px: Decimal
    is_market: bool
    tpsl: Literal["tp", "sl"]


class OrderType(WireModel):
    limit: Optional[LimitOrderType] = None
    trigger: Optional[TriggerOrderType] = None

    @model_validator(mode="after")
    def _exactly_one(self) -> "OrderType":
        if (self.limit is None) == (self.trigger is None):
            raise ValueError("Order type must be either limit or trigger")
        return self

    def to_wire(self) -> Dict[str, Any]:
        if self.limit is not None:
            return {"limit": {"tif": self.limit.tif}}
        return {
            "trigger": {
                "isMarket": self.trigger.is_market,
                "triggerPx": float_to_wire(self.trigger.trigger_px),
                "tpsl": self.trigger.tpsl,
            }
        }


def _default_order_type() -> OrderType:
    return OrderType(limit=LimitOrderType())


class OrderRequest(WireModel):
    coin: str
    is_buy: bool
    sz: Decimal
    limit_px: Decimal
    order_type: OrderType = Field(default_factory=_default_order_type)
    reduce_only: bool = False
    cloid: Optional[str] = None

    def to_wire(self, asset: int) -> Dict[str, Any]:
        # Key order is part of the signed msgpack payload
        wire = {
            "a": asset,
            "b": self.is_buy,
            "p": float_to_wire(self.limit_px),
            "s": float_to_wire(self.sz),
            "r": self.reduce_only,
            "t": self.order_type.to_wire(),
        }
        if self.cloid is not None:
            wire["c"] = self.cloid
        return wire


class CancelRequest(WireModel):
    coin: str
    oid: int


class CancelByCloidRequest(WireModel):
    coin: str
    cloid: str


class ModifyRequest(WireModel):
    """Replace a resting order, identified by oid or cloid."""
    oid: Union[int, str]
    order: OrderRequest
