import base64
from pydantic import BaseModel, Field
from typing import List, Optional
from pytoniq_core import Address, Cell


class OutboundMessage(BaseModel):
    """Internal message emitted by a transaction."""

    destination: Optional[Address] = None
    body: Cell

    class Config:
        arbitrary_types_allowed = True


class InboundMessage(BaseModel):
    """Internal message that triggered a transaction."""

    source: Optional[Address] = None
    body: Cell

    class Config:
        arbitrary_types_allowed = True


class Transaction(BaseModel):
    """Transaction on the watched account."""

    hash: bytes = Field(..., description="Transaction hash")
    lt: int = Field(..., description="Logical time, used to resume the subscription")
    now: int = Field(..., description="Unix timestamp")
    in_msg: Optional[InboundMessage] = None
    out_msgs: List[OutboundMessage] = Field(default_factory=list)

    class Config:
        arbitrary_types_allowed = True

    @property
    def hash_b64(self) -> str:
        return base64.b64encode(self.hash).decode()


class AccountState(BaseModel):
    """Subset of account information needed at startup."""

    is_active: bool
    last_transaction_lt: int = 0
    last_transaction_hash: Optional[bytes] = None
