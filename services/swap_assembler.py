"""Builds swap events from decoded router transactions."""

import structlog

from models.swap import SwapEvent
from models.transaction import Transaction
from utils.addresses import friendly
from utils.exceptions import UnsupportedMetadataKind
from .jetton_resolver import JettonResolver
from .parsers.base_parser import BaseSwapParser
from .pool_cache import PoolCache

logger = structlog.get_logger()


class SwapAssembler:
    """Decode a transaction and enrich it with issuer and pool state."""

    def __init__(self, parser: BaseSwapParser, resolver: JettonResolver, pool_cache: PoolCache):
        self.parser = parser
        self.resolver = resolver
        self.pool_cache = pool_cache

    async def assemble(self, tx: Transaction) -> SwapEvent:
        """
        Build a SwapEvent for an accepted transaction.

        Raises:
            ProtocolDecodeError: payloads do not decode
            UnsupportedMetadataKind: source jetton master content is unsupported
        """
        decoded = self.parser.decode(tx)

        event = SwapEvent(
            hash=tx.hash,
            now=tx.now,
            src_wallet=decoded.src_wallet,
            src_jetton=decoded.src_jetton,
            dst_jetton=decoded.dst_jetton,
            amount_in=decoded.amount_in,
            min_amount_out=decoded.min_amount_out,
        )

        if decoded.src_jetton is not None:
            try:
                event.src_jetton_master = await self.resolver.resolve_issuer(decoded.src_jetton)
            except UnsupportedMetadataKind:
                raise
            except Exception as e:
                logger.debug("Failed to resolve source jetton master",
                            tx=tx.hash_b64,
                            src_jetton=friendly(decoded.src_jetton),
                            error=str(e))

        if decoded.pool_address is not None:
            pool = await self.pool_cache.lookup(decoded.pool_address)
            if pool is None:
                try:
                    pool = await self.pool_cache.get_or_create(decoded.pool_address)
                except Exception as e:
                    logger.warning("Failed to get pool info",
                                 tx=tx.hash_b64,
                                 pool=friendly(decoded.pool_address),
                                 error=str(e))
            else:
                try:
                    await self.pool_cache.refresh_reserves(pool)
                except Exception as e:
                    logger.warning("Failed to refresh pool reserves, using cached state",
                                 tx=tx.hash_b64,
                                 pool=friendly(decoded.pool_address),
                                 error=str(e))
            event.pool = pool

        return event
