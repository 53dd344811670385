"""Jetton wallet -> jetton master resolution with metadata enrichment."""

from typing import Dict, Optional
import structlog
from pytoniq_core import Address

from models.jetton import OffChainContent, OnChainContent, SemiChainContent, TokenIssuerInfo
from utils.addresses import address_key, friendly
from utils.exceptions import NetworkError, UnsupportedMetadataKind
from .base_chain import BaseChainClient
from .metadata_client import MetadataClient, parse_decimals

logger = structlog.get_logger()


class JettonResolver:
    """
    Resolve a jetton wallet to its jetton master and descriptive metadata.

    The wallet -> master mapping is cached forever, a wallet can never
    change master on chain. Master data (supply, admin, content) is fetched
    on every resolution.
    """

    def __init__(self, chain: BaseChainClient, metadata: MetadataClient):
        self.chain = chain
        self.metadata = metadata
        self._wallet_master: Dict[str, Address] = {}

        # Diagnostics
        self.wallet_data_queries = 0
        self.jetton_data_queries = 0

    def __len__(self) -> int:
        return len(self._wallet_master)

    def cached_master(self, wallet: Address) -> Optional[Address]:
        return self._wallet_master.get(address_key(wallet))

    async def master_of(self, wallet: Address) -> Address:
        """Jetton master of ``wallet``, from cache or ``get_wallet_data``."""
        key = address_key(wallet)
        master = self._wallet_master.get(key)
        if master is not None:
            return master

        self.wallet_data_queries += 1
        data = await self.chain.get_wallet_data(wallet)
        # Concurrent misses for the same wallet keep the first stored value
        master = self._wallet_master.setdefault(key, data.master)
        logger.debug("Resolved jetton master",
                    wallet=friendly(wallet),
                    master=friendly(master))
        return master

    async def resolve_issuer(self, wallet: Address) -> TokenIssuerInfo:
        master = await self.master_of(wallet)
        return await self.describe_master(master)

    async def describe_master(self, master: Address) -> TokenIssuerInfo:
        """Fetch supply, admin and content of a jetton master."""
        self.jetton_data_queries += 1
        data = await self.chain.get_jetton_data(master)

        info = TokenIssuerInfo(
            address=master,
            total_supply=data.total_supply,
            mintable=data.mintable,
            admin_address=data.admin_address,
        )

        content = data.content
        if isinstance(content, OffChainContent):
            info.offchain_uri = content.uri
            try:
                info.apply_metadata(await self.metadata.fetch(content.uri))
            except NetworkError as e:
                logger.error("Failed to fetch jetton metadata",
                            master=friendly(master),
                            uri=content.uri,
                            error=str(e))
        elif isinstance(content, OnChainContent):
            info.symbol = content.get_attribute("symbol")
            info.name = content.get_attribute("name")
            info.description = content.get_attribute("description")
            info.image = content.get_attribute("image")
            info.decimals = parse_decimals(content.get_attribute("decimals"))
        elif isinstance(content, SemiChainContent):
            info.offchain_uri = content.uri
            info.name = content.get_attribute("name")
            info.description = content.get_attribute("description")
            info.image = content.get_attribute("image")
            info.decimals = parse_decimals(content.get_attribute("decimals"))
        else:
            raise UnsupportedMetadataKind(f"unsupported content type {type(content).__name__}")

        return info
