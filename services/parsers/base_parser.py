"""Base swap parser interface."""

from abc import ABC, abstractmethod
from typing import Any, Callable, Optional

from pydantic import BaseModel
from pytoniq_core import Address, Slice

from models.transaction import Transaction
from utils.exceptions import ProtocolDecodeError


class DecodedSwap(BaseModel):
    """Fields extracted from a swap transaction's message payloads."""

    query_id: int
    amount_in: int
    src_wallet: Optional[Address] = None
    dst_jetton: Optional[Address] = None
    min_amount_out: int
    to_address: Optional[Address] = None
    has_ref: int = 0

    out_query_id: int
    out_to_address: Optional[Address] = None
    out_sender_address: Optional[Address] = None

    # Not parsed: taken from the message envelopes
    src_jetton: Optional[Address] = None
    pool_address: Optional[Address] = None

    class Config:
        arbitrary_types_allowed = True


def read_field(field: str, reader: Callable[[], Any]) -> Any:
    """Run one cursor read, naming the field on failure."""
    try:
        return reader()
    except ProtocolDecodeError:
        raise
    except Exception as e:
        raise ProtocolDecodeError(field, str(e) or type(e).__name__) from e


def load_op(cs: Slice, field: str = "op") -> int:
    return read_field(field, lambda: cs.load_uint(32))


def load_address(cs: Slice, field: str) -> Optional[Address]:
    return read_field(field, cs.load_address)


class BaseSwapParser(ABC):
    """Base class for DEX specific swap parsers."""

    @abstractmethod
    def get_protocol(self) -> str:
        """Return the DEX this parser handles."""
        pass

    @abstractmethod
    def accepts(self, tx: Transaction) -> bool:
        """Whether the transaction's opcodes match a swap."""
        pass

    @abstractmethod
    def decode(self, tx: Transaction) -> DecodedSwap:
        """Decode swap parameters, raising ProtocolDecodeError."""
        pass
