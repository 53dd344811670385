"""Wiring of the watcher's long-lived collaborators."""

from dataclasses import dataclass
from typing import Optional

from config.settings import Settings
from utils.addresses import parse_address
from .base_chain import BaseChainClient
from .broadcaster import SwapBroadcaster
from .emitter import SwapEmitter, ThroughputCounter
from .jetton_resolver import JettonResolver
from .metadata_client import MetadataClient
from .parsers.base_parser import BaseSwapParser
from .parsers.stonfi_parser import StonfiSwapParser
from .pool_cache import PoolCache
from .price_engine import PriceEngine
from .swap_assembler import SwapAssembler
from .toncenter_client import TonCenterClient


@dataclass
class WatcherContext:
    """Everything a processing unit needs, passed explicitly instead of globals."""

    settings: Settings
    chain: BaseChainClient
    metadata: MetadataClient
    resolver: JettonResolver
    price_engine: PriceEngine
    pool_cache: PoolCache
    parser: BaseSwapParser
    assembler: SwapAssembler
    emitter: SwapEmitter
    counter: ThroughputCounter
    broadcaster: Optional[SwapBroadcaster] = None

    @classmethod
    def build(
        cls,
        settings: Settings,
        chain: Optional[BaseChainClient] = None,
        metadata: Optional[MetadataClient] = None,
        broadcaster: Optional[SwapBroadcaster] = None
    ) -> "WatcherContext":
        chain = chain or TonCenterClient(settings)
        metadata = metadata or MetadataClient(settings)

        resolver = JettonResolver(chain, metadata)
        price_engine = PriceEngine(chain, parse_address(settings.anchor_pool_address))
        pool_cache = PoolCache(chain, resolver, price_engine)
        parser = StonfiSwapParser()

        return cls(
            settings=settings,
            chain=chain,
            metadata=metadata,
            resolver=resolver,
            price_engine=price_engine,
            pool_cache=pool_cache,
            parser=parser,
            assembler=SwapAssembler(parser, resolver, pool_cache),
            emitter=SwapEmitter(price_engine, settings.display_format, broadcaster),
            counter=ThroughputCounter(),
            broadcaster=broadcaster,
        )
