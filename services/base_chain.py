"""Base chain-access client with typed get-method helpers."""

import hashlib
from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Dict, List, Optional
import structlog
from pytoniq_core import Address, Cell, Slice

from models.jetton import (
    JettonContent,
    JettonData,
    OffChainContent,
    OnChainContent,
    SemiChainContent,
    WalletData,
)
from models.pool import PoolData
from models.transaction import AccountState, Transaction
from utils.exceptions import ProtocolDecodeError, UnsupportedMetadataKind

logger = structlog.get_logger()


# TEP-64 content layout prefixes
ONCHAIN_CONTENT_PREFIX = 0x00
OFFCHAIN_CONTENT_PREFIX = 0x01
SNAKE_DATA_PREFIX = 0x00

ONCHAIN_ATTRIBUTE_KEYS = (
    "uri",
    "name",
    "description",
    "image",
    "image_data",
    "symbol",
    "decimals",
    "amount_style",
    "render_type",
)

_ATTRIBUTE_BY_HASH: Dict[int, str] = {
    int.from_bytes(hashlib.sha256(key.encode()).digest(), "big"): key
    for key in ONCHAIN_ATTRIBUTE_KEYS
}


class GetMethodResult:
    """Typed view over a get-method result stack."""

    def __init__(self, stack: List[Any], method: str = ""):
        self.stack = stack
        self.method = method

    def __len__(self) -> int:
        return len(self.stack)

    def _entry(self, index: int) -> Any:
        if index >= len(self.stack):
            raise ProtocolDecodeError(
                f"{self.method}[{index}]", f"stack has {len(self.stack)} entries"
            )
        return self.stack[index]

    def raw_at(self, index: int) -> Any:
        return self._entry(index)

    def int_at(self, index: int) -> int:
        value = self._entry(index)
        if not isinstance(value, int):
            raise ProtocolDecodeError(f"{self.method}[{index}]", f"expected int, got {type(value).__name__}")
        return value

    def cell_at(self, index: int) -> Cell:
        value = self._entry(index)
        if not isinstance(value, Cell):
            raise ProtocolDecodeError(f"{self.method}[{index}]", f"expected cell, got {type(value).__name__}")
        return value

    def address_at(self, index: int) -> Optional[Address]:
        try:
            return self.cell_at(index).begin_parse().load_address()
        except ProtocolDecodeError:
            raise
        except Exception as e:
            raise ProtocolDecodeError(f"{self.method}[{index}]", str(e)) from e


def load_snake_string(cs: Slice) -> str:
    """Read snake-encoded bytes (data continues in the first ref)."""
    chunks = []
    while True:
        chunks.append(cs.load_bytes(cs.remaining_bits // 8))
        if cs.remaining_refs == 0:
            break
        cs = cs.load_ref().begin_parse()
    return b"".join(chunks).decode("utf-8", errors="ignore")


def _load_attribute_value(value: Slice) -> str:
    cs = value
    if cs.remaining_bits == 0 and cs.remaining_refs > 0:
        cs = cs.load_ref().begin_parse()
    if cs.remaining_bits < 8:
        return ""
    prefix = cs.load_uint(8)
    if prefix != SNAKE_DATA_PREFIX:
        logger.debug("Skipping non-snake on-chain attribute", prefix=prefix)
        return ""
    return load_snake_string(cs)


def decode_jetton_content(cell: Cell) -> JettonContent:
    """Decode TEP-64 token content into the closed content variant."""
    cs = cell.begin_parse()
    if cs.remaining_bits < 8:
        raise UnsupportedMetadataKind("empty jetton content")

    prefix = cs.load_uint(8)
    if prefix == OFFCHAIN_CONTENT_PREFIX:
        return OffChainContent(uri=load_snake_string(cs))

    if prefix == ONCHAIN_CONTENT_PREFIX:
        raw = cs.load_dict(256) or {}
        attributes: Dict[str, str] = {}
        for key_hash, value in raw.items():
            name = _ATTRIBUTE_BY_HASH.get(key_hash)
            if name is None:
                continue
            attributes[name] = _load_attribute_value(value)

        uri = attributes.pop("uri", "")
        if uri:
            return SemiChainContent(uri=uri, attributes=attributes)
        return OnChainContent(attributes=attributes)

    raise UnsupportedMetadataKind(f"unsupported content prefix 0x{prefix:02x}")


class BaseChainClient(ABC):
    """Chain-access collaborator used by resolvers, pool cache and watcher."""

    @abstractmethod
    async def connect(self) -> None:
        """Open connections to the chain."""
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        """Close connections."""
        pass

    @abstractmethod
    async def get_masterchain_seqno(self) -> int:
        """Current head (masterchain) block seqno."""
        pass

    @abstractmethod
    async def get_account_state(self, address: Address) -> AccountState:
        """Activity state and last processed logical time of an account."""
        pass

    @abstractmethod
    async def run_get_method(
        self,
        address: Address,
        method: str,
        seqno: Optional[int] = None
    ) -> GetMethodResult:
        """Invoke a contract get-method at the given (or head) block."""
        pass

    @abstractmethod
    def subscribe_transactions(self, address: Address, from_lt: int) -> AsyncIterator[Transaction]:
        """Yield transactions with ``lt > from_lt`` in chain order, forever."""
        pass

    async def get_wallet_data(self, wallet: Address) -> WalletData:
        seqno = await self.get_masterchain_seqno()
        result = await self.run_get_method(wallet, "get_wallet_data", seqno)
        return WalletData(
            balance=result.int_at(0),
            owner=result.address_at(1),
            master=result.address_at(2),
        )

    async def get_jetton_data(self, master: Address) -> JettonData:
        seqno = await self.get_masterchain_seqno()
        result = await self.run_get_method(master, "get_jetton_data", seqno)
        return JettonData(
            total_supply=result.int_at(0),
            mintable=result.int_at(1) != 0,
            admin_address=result.address_at(2),
            content=decode_jetton_content(result.cell_at(3)),
        )

    async def get_pool_data(self, pool: Address) -> PoolData:
        seqno = await self.get_masterchain_seqno()
        result = await self.run_get_method(pool, "get_pool_data", seqno)
        return PoolData(
            reserve0=result.int_at(0),
            reserve1=result.int_at(1),
            token0_address=result.address_at(2),
            token1_address=result.address_at(3),
            lp_fee=result.int_at(4),
            protocol_fee=result.int_at(5),
            ref_fee=result.int_at(6),
            reserved=result.raw_at(7),
            collected_token0_protocol_fee=result.int_at(8),
            collected_token1_protocol_fee=result.int_at(9),
        )
