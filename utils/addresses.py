"""Helpers for TON account addresses."""

import re
from typing import Optional, Union

from pytoniq_core import Address

_SHORTEN_RE = re.compile(r"^(.{4}).*(.{4})$")


def parse_address(value: Union[str, Address]) -> Address:
    """Parse a raw (``0:abcd...``) or user-friendly address."""
    if isinstance(value, Address):
        return value
    return Address(value)


def address_key(address: Address) -> str:
    """Stable dictionary key for an address (raw workchain:hex form)."""
    return address.to_str(is_user_friendly=False)


def friendly(address: Optional[Address]) -> str:
    if address is None:
        return "nil"
    return address.to_str(is_user_friendly=True, is_bounceable=True, is_url_safe=True)


def shorten(address: Optional[Address]) -> str:
    """``EQB3...TiUt`` style abbreviation for log lines."""
    if address is None:
        return "nil"
    return _SHORTEN_RE.sub(r"\1...\2", friendly(address))
