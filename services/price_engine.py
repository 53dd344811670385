"""Price derivation anchored on the jUSDT/pTON pool."""

import asyncio
from fractions import Fraction
from typing import Dict, Iterable, Optional
import structlog
from pytoniq_core import Address

from models.jetton import MAX_JETTON_DECIMALS
from models.pool import PoolState, PriceEntry
from utils.addresses import friendly
from utils.decimal_utils import from_nano
from utils.exceptions import PriceNotFound
from .base_chain import BaseChainClient

logger = structlog.get_logger()


NATIVE_SYMBOL = "pTON"
STABLE_SYMBOL = "jUSDT"

NATIVE_DECIMALS = 9
STABLE_DECIMALS = 6

# 1.000000 at 6 decimals
STABLE_PRICE = 1_000_000

ANCHOR_POOL_SYMBOL = f"{STABLE_SYMBOL}-{NATIVE_SYMBOL} LP"

ANCHOR_DECIMALS = {
    NATIVE_SYMBOL: NATIVE_DECIMALS,
    STABLE_SYMBOL: STABLE_DECIMALS,
}


def derive_price(
    reserve_a: int,
    reserve_b: int,
    decimals_a: int,
    decimals_b: int,
    price_a: int
) -> int:
    """
    Price of asset B from the reserves of an A/B pool and the price of A.

    Both reserves are brought to the larger decimal count, then
    ``price_b = reserve_a * price_a / reserve_b`` truncated toward zero.
    The result is on the same fixed-point scale as ``price_a``.

    Raises:
        ValueError: if ``reserve_b`` is zero
    """
    if reserve_b == 0:
        raise ValueError("reserve of the priced asset is zero")

    if decimals_a > decimals_b:
        reserve_b = reserve_b * 10 ** (decimals_a - decimals_b)
    else:
        reserve_a = reserve_a * 10 ** (decimals_b - decimals_a)

    return int(Fraction(reserve_a * price_a, reserve_b))


class PriceEngine:
    """
    Symbol -> fixed-point USD price table.

    ``lock`` is shared with the pool cache: reserve updates and the price
    recompute they trigger happen in one critical section.
    """

    def __init__(self, chain: BaseChainClient, anchor_pool_address: Address):
        self.chain = chain
        self.lock = asyncio.Lock()
        self.prices: Dict[str, PriceEntry] = {}
        self.anchor_pool = PoolState(
            address=anchor_pool_address,
            lp_jetton=anchor_pool_address,
            reserve0=1,
            reserve1=1,
            symbol=ANCHOR_POOL_SYMBOL,
        )
        self.native_price = 0
        self.anchor_refreshes = 0

    @staticmethod
    def is_anchor(symbol: str) -> bool:
        return symbol in ANCHOR_DECIMALS

    def lookup(self, symbol: str) -> Optional[PriceEntry]:
        return self.prices.get(symbol)

    def symbol_price(self, symbol: str) -> PriceEntry:
        entry = self.prices.get(symbol)
        if entry is None:
            raise PriceNotFound(f"price not found for {symbol}")
        return entry

    def symbol_price_friendly(self, symbol: str) -> str:
        try:
            entry = self.symbol_price(symbol)
        except PriceNotFound:
            return "N/A"
        return from_nano(entry.value, entry.decimals)

    def update_base_price(self) -> None:
        """Recompute the native asset price from the anchor reserves. Caller holds ``lock``."""
        try:
            self.native_price = derive_price(
                self.anchor_pool.reserve0,
                self.anchor_pool.reserve1,
                STABLE_DECIMALS,
                NATIVE_DECIMALS,
                STABLE_PRICE,
            )
        except ValueError as e:
            logger.warning("Anchor pool has an empty reserve, keeping last price", error=str(e))
            return

        self.prices[NATIVE_SYMBOL] = PriceEntry(decimals=STABLE_DECIMALS, value=self.native_price)
        self.prices[STABLE_SYMBOL] = PriceEntry(decimals=STABLE_DECIMALS, value=STABLE_PRICE)
        logger.debug("New native price", symbol=NATIVE_SYMBOL, value=self.native_price, decimals=STABLE_DECIMALS)

    def recompute(self, pools: Iterable[PoolState]) -> None:
        """
        Derive prices for pools pairing exactly one priced anchor asset.

        A pool that cannot be priced is skipped without affecting the others.
        Caller holds ``lock``.
        """
        for pool in pools:
            try:
                self._recompute_pool(pool)
            except Exception as e:
                logger.warning("Skipping price derivation",
                             pool=friendly(pool.address),
                             error=str(e),
                             error_type=type(e).__name__)

    def _recompute_pool(self, pool: PoolState) -> None:
        if not pool.has_both_issuers():
            return

        token0, token1 = pool.token0, pool.token1
        priced0 = self.is_anchor(token0.symbol) and token0.symbol in self.prices
        priced1 = self.is_anchor(token1.symbol) and token1.symbol in self.prices

        if priced0 and not self.is_anchor(token1.symbol):
            anchor, target = token0, token1
            reserve_a, reserve_b = pool.reserve0, pool.reserve1
        elif priced1 and not self.is_anchor(token0.symbol):
            anchor, target = token1, token0
            reserve_a, reserve_b = pool.reserve1, pool.reserve0
        else:
            return

        if not 0 <= target.decimals <= MAX_JETTON_DECIMALS:
            raise ValueError(f"decimals {target.decimals} of {target.symbol} out of range")

        price_a = self.prices[anchor.symbol]
        try:
            value = derive_price(
                reserve_a,
                reserve_b,
                ANCHOR_DECIMALS[anchor.symbol],
                target.decimals,
                price_a.value,
            )
        except ValueError as e:
            logger.debug("Skipping price derivation",
                        pool=friendly(pool.address),
                        symbol=target.symbol,
                        error=str(e))
            return

        self.prices[target.symbol] = PriceEntry(decimals=price_a.decimals, value=value)
        logger.debug("Updated price",
                    symbol=target.symbol,
                    anchor=anchor.symbol,
                    value=value,
                    decimals=price_a.decimals)

    async def refresh_anchor(self, pools: Iterable[PoolState] = ()) -> None:
        """Re-read the anchor reserves, then recompute anchor and table atomically."""
        data = await self.chain.get_pool_data(self.anchor_pool.address)
        async with self.lock:
            self.anchor_pool.apply_pool_data(data)
            self.update_base_price()
            self.recompute(pools)
            self.anchor_refreshes += 1

        logger.debug("Anchor pool refreshed",
                    reserve0=self.anchor_pool.reserve0,
                    reserve1=self.anchor_pool.reserve1,
                    native_price=self.native_price)

    async def run_anchor_refresh(self, pools: Iterable[PoolState], interval: float = 10.0) -> None:
        """Refresh the anchor immediately, then every ``interval`` seconds."""
        while True:
            try:
                await self.refresh_anchor(pools)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning("Failed to refresh anchor pool",
                             pool=friendly(self.anchor_pool.address),
                             error=str(e))
            await asyncio.sleep(interval)
