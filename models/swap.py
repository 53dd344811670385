import base64
from pydantic import BaseModel, Field
from typing import Optional, Iterable, List, Protocol
from enum import Enum
from pytoniq_core import Address

from models.jetton import TokenIssuerInfo
from models.pool import PoolState, PriceEntry
from utils.addresses import friendly, shorten
from utils.decimal_utils import from_nano, format_price, market_cap
from utils.exceptions import MalformedPoolSymbol


class SwapAction(str, Enum):
    """Trade direction relative to the pool's token0."""
    BUY = "buy"
    SELL = "sell"
    UNKNOWN = "unknown"


class PriceLookup(Protocol):
    """Read side of the price table used while rendering records."""

    def lookup(self, symbol: str) -> Optional[PriceEntry]: ...

    def symbol_price_friendly(self, symbol: str) -> str: ...

    def is_anchor(self, symbol: str) -> bool: ...


CSV_FIELDS = (
    "timestamp",
    "hash",
    "action",
    "trader",
    "token_name",
    "token_symbol",
    "amount_in",
    "min_amount_out",
    "token0_price",
    "token1_price",
    "reserve0",
    "reserve1",
    "token0_total_supply",
    "token1_total_supply",
    "token0_market_cap",
    "token1_market_cap",
)


class SwapEvent(BaseModel):
    """Swap observed on the DEX router."""

    hash: bytes = Field(..., description="Transaction hash")
    now: int = Field(..., description="Transaction unix timestamp")

    src_wallet: Optional[Address] = Field(None, description="Trader account")
    src_jetton: Optional[Address] = Field(None, description="Jetton wallet that notified the router")
    dst_jetton: Optional[Address] = Field(None, description="Requested output jetton wallet")

    amount_in: int = Field(..., description="Input amount")
    min_amount_out: int = Field(..., description="Minimum output amount")

    src_jetton_master: Optional[TokenIssuerInfo] = None
    pool: Optional[PoolState] = None

    class Config:
        arbitrary_types_allowed = True

    @property
    def hash_b64(self) -> str:
        return base64.b64encode(self.hash).decode()

    def action(self) -> SwapAction:
        if self.src_jetton_master is None or self.pool is None:
            return SwapAction.UNKNOWN
        try:
            token0_symbol = self.pool.token0_symbol()
        except MalformedPoolSymbol:
            return SwapAction.UNKNOWN
        if self.src_jetton_master.symbol == token0_symbol:
            return SwapAction.BUY
        return SwapAction.SELL

    def token0_symbol(self) -> str:
        if self.pool is not None and self.pool.token0 is not None:
            return self.pool.token0.symbol
        return "unknown"

    def token1_symbol(self) -> str:
        if self.pool is not None and self.pool.token1 is not None:
            return self.pool.token1.symbol
        return "unknown"

    def token0_name(self) -> str:
        if self.pool is not None and self.pool.token0 is not None:
            return self.pool.token0.name
        return "unknown"

    def token1_name(self) -> str:
        if self.pool is not None and self.pool.token1 is not None:
            return self.pool.token1.name
        return "unknown"

    def missing(self) -> str:
        """``O``/``X`` flags for pool, token0 issuer and token1 issuer."""
        if self.pool is None:
            return "XXX"
        flags = "O"
        flags += "O" if self.pool.token0 is not None else "X"
        flags += "O" if self.pool.token1 is not None else "X"
        return flags

    def subject_token(self, prices: PriceLookup) -> Optional[TokenIssuerInfo]:
        """The non-anchor side of the pool, token0 when ambiguous."""
        if self.pool is None:
            return None
        token0, token1 = self.pool.token0, self.pool.token1
        if token0 is not None and prices.is_anchor(token0.symbol) and token1 is not None:
            return token1
        return token0 if token0 is not None else token1

    # Renderers

    def pretty(self, prices: PriceLookup) -> str:
        text = (
            f" {self.action().value} {from_nano(self.amount_in)} {self.token0_symbol()} "
            f"for {from_nano(self.min_amount_out)} {self.token1_symbol()} "
            f"at TX {self.hash_b64} [{self.missing()}] "
        )
        if self.pool is not None:
            text += (
                f"with pool {self.pool.symbol} (reserve: "
                f"{from_nano(self.pool.reserve0)}[$ {prices.symbol_price_friendly(self.token0_symbol())}]/"
                f"{from_nano(self.pool.reserve1)}[$ {prices.symbol_price_friendly(self.token1_symbol())}]) "
            )
        return text

    def long_pretty(self) -> str:
        pool = self.pool
        return (
            f"{shorten(self.src_wallet)} {self.action().value} {from_nano(self.amount_in)} "
            f"{self.token0_symbol()} to {from_nano(self.min_amount_out)} {self.token1_symbol()} "
            f"with pool {shorten(pool.lp_jetton if pool else None)}"
            f"(reserve: {from_nano(pool.reserve0 if pool else None)}/"
            f"{from_nano(pool.reserve1 if pool else None)}) at TX {self.hash_b64} "
        )

    def verbose(self) -> str:
        lines = [
            f"Hash: {self.hash_b64}",
            f"Action: {self.action().value}",
            f"SrcWallet: {friendly(self.src_wallet)}",
            f"SrcJetton: {friendly(self.src_jetton)}",
            f"DstJetton: {friendly(self.dst_jetton)}",
            f"InCoins: {self.amount_in}",
            f"OutCoins: {self.min_amount_out}",
            f"Now: {self.now}",
        ]
        text = "\n".join(lines) + "\n"
        if self.pool is not None:
            text += "=====  pool ==== \n" + str(self.pool)
        return text

    def csv_fields(self, prices: PriceLookup) -> List[str]:
        pool = self.pool
        subject = self.subject_token(prices)

        def price_of(symbol: str) -> Optional[PriceEntry]:
            return prices.lookup(symbol) if symbol != "unknown" else None

        def cap_of(token: Optional[TokenIssuerInfo]) -> str:
            if token is None:
                return "N/A"
            entry = price_of(token.symbol)
            if entry is None:
                return "N/A"
            value = market_cap(token.total_supply, token.decimals, entry.value, entry.decimals)
            return format_price(value, max_decimals=2) if value is not None else "N/A"

        def supply_of(token: Optional[TokenIssuerInfo]) -> str:
            if token is None:
                return "N/A"
            return from_nano(token.total_supply, token.decimals)

        token0 = pool.token0 if pool else None
        token1 = pool.token1 if pool else None
        return [
            str(self.now),
            self.hash_b64,
            self.action().value,
            friendly(self.src_wallet),
            subject.name if subject else "unknown",
            subject.symbol if subject else "unknown",
            from_nano(self.amount_in),
            from_nano(self.min_amount_out),
            prices.symbol_price_friendly(self.token0_symbol()),
            prices.symbol_price_friendly(self.token1_symbol()),
            str(pool.reserve0) if pool else "N/A",
            str(pool.reserve1) if pool else "N/A",
            supply_of(token0),
            supply_of(token1),
            cap_of(token0),
            cap_of(token1),
        ]

    def csv(self, prices: PriceLookup) -> str:
        return ",".join(_csv_escape(field) for field in self.csv_fields(prices))


def _csv_escape(value: str) -> str:
    if any(ch in value for ch in ',"\n'):
        return '"' + value.replace('"', '""') + '"'
    return value


def csv_header(fields: Iterable[str] = CSV_FIELDS) -> str:
    return ",".join(fields)
