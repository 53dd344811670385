"""Pool state cache keyed by pool address."""

import asyncio
from typing import Dict, Optional, ValuesView
import structlog
from pytoniq_core import Address

from models.pool import PoolState
from utils.addresses import address_key, friendly
from .base_chain import BaseChainClient
from .jetton_resolver import JettonResolver
from .price_engine import PriceEngine

logger = structlog.get_logger()


def _consume_exception(future: asyncio.Future) -> None:
    # Every waiter may have been cancelled before a failed creation finished
    if not future.cancelled():
        future.exception()


class PoolCache:
    """
    Lazily created pool states, never evicted.

    Inserts and reserve refreshes run under the price engine's lock together
    with the price recompute they trigger.
    """

    def __init__(self, chain: BaseChainClient, resolver: JettonResolver, price_engine: PriceEngine):
        self.chain = chain
        self.resolver = resolver
        self.price_engine = price_engine
        self.lock = price_engine.lock
        self._pools: Dict[str, PoolState] = {}
        self._pending: Dict[str, asyncio.Future] = {}

    def __len__(self) -> int:
        return len(self._pools)

    def pools(self) -> ValuesView[PoolState]:
        """Live view over cached pools."""
        return self._pools.values()

    async def lookup(self, address: Address) -> Optional[PoolState]:
        async with self.lock:
            return self._pools.get(address_key(address))

    async def get_or_create(self, address: Address) -> PoolState:
        """
        Cached pool state, created on first use.

        Concurrent misses for the same pool share a single creation.
        """
        pool = await self.lookup(address)
        if pool is not None:
            return pool

        key = address_key(address)
        pending = self._pending.get(key)
        if pending is None:
            pending = asyncio.ensure_future(self._create(address))
            self._pending[key] = pending
            pending.add_done_callback(lambda _: self._pending.pop(key, None))
            pending.add_done_callback(_consume_exception)

        # A cancelled waiter must not cancel the creation shared with others
        return await asyncio.shield(pending)

    async def _create(self, address: Address) -> PoolState:
        pool = PoolState(address=address)

        # The pool is the jetton master of its LP token
        try:
            lp = await self.resolver.describe_master(address)
            pool.lp_jetton = address
            pool.lp_offchain_uri = lp.offchain_uri or ""
            pool.lp_total_supply = lp.total_supply
            pool.lp_mintable = lp.mintable
            pool.lp_admin_address = lp.admin_address
            pool.symbol = lp.symbol
            pool.name = lp.name
            pool.description = lp.description
            pool.decimals = lp.decimals
            pool.image = lp.image
        except Exception as e:
            logger.debug("LP jetton master information missing",
                        pool=friendly(address),
                        error=str(e))

        data = await self.chain.get_pool_data(address)
        pool.apply_pool_data(data)

        token0, token1 = await asyncio.gather(
            self.resolver.resolve_issuer(data.token0_address),
            self.resolver.resolve_issuer(data.token1_address),
            return_exceptions=True,
        )
        for side, result in (("token0", token0), ("token1", token1)):
            if isinstance(result, BaseException):
                logger.debug("Failed to resolve pool jetton master",
                            pool=friendly(address),
                            side=side,
                            error=str(result))
                continue
            setattr(pool, side, result)

        async with self.lock:
            existing = self._pools.get(address_key(address))
            if existing is not None:
                return existing
            self._pools[address_key(address)] = pool
            self.price_engine.recompute(self._pools.values())

        logger.info("Pool cached",
                   pool=friendly(address),
                   symbol=pool.symbol or "unknown",
                   missing_token0=pool.token0 is None,
                   missing_token1=pool.token1 is None,
                   cached_pools=len(self._pools))
        return pool

    async def refresh_reserves(self, pool: PoolState) -> PoolState:
        """Re-read reserves and collected fees, then recompute prices."""
        data = await self.chain.get_pool_data(pool.address)
        async with self.lock:
            pool.apply_reserves(data)
            self.price_engine.recompute(self._pools.values())

        logger.debug("Pool reserves refreshed",
                    pool=friendly(pool.address),
                    reserve0=pool.reserve0,
                    reserve1=pool.reserve1)
        return pool
