from pydantic import BaseModel, Field
from typing import Optional, Dict, Union, Literal
from pytoniq_core import Address


class OffChainContent(BaseModel):
    """Jetton metadata hosted at an external URI."""

    kind: Literal["offchain"] = "offchain"
    uri: str


class OnChainContent(BaseModel):
    """Jetton metadata stored as an attribute dictionary on chain."""

    kind: Literal["onchain"] = "onchain"
    attributes: Dict[str, str] = Field(default_factory=dict)

    def get_attribute(self, name: str) -> str:
        return self.attributes.get(name, "")


class SemiChainContent(BaseModel):
    """On-chain attributes plus an off-chain ``uri`` attribute."""

    kind: Literal["semichain"] = "semichain"
    uri: str = ""
    attributes: Dict[str, str] = Field(default_factory=dict)

    def get_attribute(self, name: str) -> str:
        return self.attributes.get(name, "")


JettonContent = Union[OffChainContent, OnChainContent, SemiChainContent]

# Jetton decimals are a uint8 by convention
MAX_JETTON_DECIMALS = 255


class JettonMetadata(BaseModel):
    """Off-chain metadata JSON document."""

    symbol: str = ""
    name: str = ""
    description: str = ""
    decimals: int = 0
    image: str = ""


class JettonData(BaseModel):
    """Decoded ``get_jetton_data`` result."""

    total_supply: int
    mintable: bool
    admin_address: Optional[Address] = None
    content: JettonContent

    class Config:
        arbitrary_types_allowed = True


class WalletData(BaseModel):
    """Decoded ``get_wallet_data`` result."""

    balance: int
    owner: Optional[Address] = None
    master: Address

    class Config:
        arbitrary_types_allowed = True


class TokenIssuerInfo(BaseModel):
    """Jetton master (token issuer) information."""

    address: Address = Field(..., description="Jetton master address")

    offchain_uri: Optional[str] = Field(None, description="Off-chain metadata URI")
    total_supply: int = Field(0, description="Raw total supply")
    mintable: bool = Field(False, description="Whether more supply can be minted")
    admin_address: Optional[Address] = Field(None, description="Admin account")

    symbol: str = ""
    name: str = ""
    description: str = ""
    decimals: int = 0
    image: str = ""

    class Config:
        arbitrary_types_allowed = True

    def apply_metadata(self, metadata: JettonMetadata) -> None:
        self.symbol = metadata.symbol
        self.name = metadata.name
        self.description = metadata.description
        self.decimals = metadata.decimals
        self.image = metadata.image

    def __str__(self) -> str:
        lines = [
            f"addr: {self.address.to_str()}",
            f"offChainURI: {self.offchain_uri or ''}",
            f"totalSupply: {self.total_supply}",
            f"mintable: {str(self.mintable).lower()}",
            f"adminAddr: {self.admin_address.to_str() if self.admin_address else 'nil'}",
            f"symbol: {self.symbol}",
            f"name: {self.name}",
            f"description: {self.description}",
            f"decimals: {self.decimals}",
        ]
        return "\n".join(lines) + "\n"
