from pydantic import BaseModel, Field
from typing import Optional, Any
from decimal import Decimal
from pytoniq_core import Address

from models.jetton import TokenIssuerInfo
from utils.exceptions import MalformedPoolSymbol


class PoolData(BaseModel):
    """Decoded ``get_pool_data`` result (fixed ten-element layout)."""

    reserve0: int
    reserve1: int
    token0_address: Address
    token1_address: Address
    lp_fee: int
    protocol_fee: int
    ref_fee: int
    # Index 7 is undocumented upstream, kept as read
    reserved: Any = None
    collected_token0_protocol_fee: int
    collected_token1_protocol_fee: int

    class Config:
        arbitrary_types_allowed = True


class PoolState(BaseModel):
    """Liquidity pool state tracked by the pool cache."""

    address: Address = Field(..., description="Pool contract address")

    token0: Optional[TokenIssuerInfo] = Field(None, description="Issuer of token0")
    token1: Optional[TokenIssuerInfo] = Field(None, description="Issuer of token1")

    token0_address: Optional[Address] = Field(None, description="Pool's token0 jetton wallet")
    token1_address: Optional[Address] = Field(None, description="Pool's token1 jetton wallet")

    reserve0: int = 0
    reserve1: int = 0

    # Basis points
    lp_fee: int = 0
    protocol_fee: int = 0
    ref_fee: int = 0

    collected_token0_protocol_fee: int = 0
    collected_token1_protocol_fee: int = 0

    # LP jetton (the pool is its own jetton master)
    lp_jetton: Optional[Address] = None
    lp_admin_address: Optional[Address] = None
    lp_total_supply: Optional[int] = None
    lp_mintable: bool = False
    lp_offchain_uri: str = ""

    symbol: str = ""
    name: str = ""
    description: str = ""
    decimals: int = 0
    image: str = ""

    class Config:
        arbitrary_types_allowed = True

    def apply_pool_data(self, data: PoolData) -> None:
        self.reserve0 = data.reserve0
        self.reserve1 = data.reserve1
        self.token0_address = data.token0_address
        self.token1_address = data.token1_address
        self.lp_fee = data.lp_fee
        self.protocol_fee = data.protocol_fee
        self.ref_fee = data.ref_fee
        self.collected_token0_protocol_fee = data.collected_token0_protocol_fee
        self.collected_token1_protocol_fee = data.collected_token1_protocol_fee

    def apply_reserves(self, data: PoolData) -> None:
        """Overwrite only reserves and collected protocol fees."""
        self.reserve0 = data.reserve0
        self.reserve1 = data.reserve1
        self.collected_token0_protocol_fee = data.collected_token0_protocol_fee
        self.collected_token1_protocol_fee = data.collected_token1_protocol_fee

    def has_both_issuers(self) -> bool:
        return self.token0 is not None and self.token1 is not None

    def token0_symbol(self) -> str:
        """Token0 part of an ``X-Y LP`` symbol."""
        if self.lp_jetton is None:
            return "unknown"
        index = self.symbol.find("-")
        if index < 0:
            raise MalformedPoolSymbol(f"pool symbol {self.symbol!r} has no '-'")
        return self.symbol[:index]

    def token1_symbol(self) -> str:
        """Token1 part of an ``X-Y LP`` symbol."""
        if self.lp_jetton is None:
            return "unknown"
        index = self.symbol.find("-")
        if index < 0:
            raise MalformedPoolSymbol(f"pool symbol {self.symbol!r} has no '-'")
        end = self.symbol.rfind(" ")
        if end <= index:
            raise MalformedPoolSymbol(f"pool symbol {self.symbol!r} has no ' LP' suffix")
        return self.symbol[index + 1:end]

    def __str__(self) -> str:
        def addr(value: Optional[Address]) -> str:
            return value.to_str() if value is not None else "nil"

        lines = [
            f"token0Address: {addr(self.token0_address)}",
            f"token1Address: {addr(self.token1_address)}",
            f"reserve0: {self.reserve0}",
            f"reserve1: {self.reserve1}",
            f"lpFee: {self.lp_fee}",
            f"protocolFee: {self.protocol_fee}",
            f"refFee: {self.ref_fee}",
            f"collectedToken0ProtocolFee: {self.collected_token0_protocol_fee}",
            f"collectedToken1ProtocolFee: {self.collected_token1_protocol_fee}",
        ]
        if self.lp_jetton is not None:
            lines.append(f"lpJetton: {addr(self.lp_jetton)}")
        if self.lp_admin_address is not None:
            lines.append(f"lpAdminAddr: {addr(self.lp_admin_address)}")
        if self.lp_total_supply is not None:
            lines.append(f"lpTotalSupply: {self.lp_total_supply}")
        lines.extend([
            f"lpMintable: {str(self.lp_mintable).lower()}",
            f"url: {self.lp_offchain_uri}",
            f"symbol: {self.symbol}",
            f"name: {self.name}",
            f"description: {self.description}",
            f"decimals: {self.decimals}",
            f"image: {self.image}",
        ])
        text = "\n".join(lines) + "\n"
        if self.token0 is not None:
            text += "===== token0JettonMaster ===== \n" + str(self.token0)
        if self.token1 is not None:
            text += "===== token1JettonMaster ====== \n" + str(self.token1)
        return text


class PriceEntry(BaseModel):
    """
    Fixed-point price: ``value / 10**decimals``.

    Derived prices carry the scale of the anchor price they come from (6),
    not the decimals of the priced jetton.
    """

    decimals: int
    value: int

    def as_decimal(self) -> Decimal:
        return Decimal(self.value).scaleb(-self.decimals)
