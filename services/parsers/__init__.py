"""Swap parsers package."""

from .base_parser import BaseSwapParser, DecodedSwap
from .stonfi_parser import (
    OP_JETTON_NOTIFY,
    OP_STONFI_SWAP,
    OP_SWAP_INTENT,
    StonfiSwapParser,
)

__all__ = [
    'BaseSwapParser',
    'DecodedSwap',
    'StonfiSwapParser',
    'OP_JETTON_NOTIFY',
    'OP_STONFI_SWAP',
    'OP_SWAP_INTENT',
]
