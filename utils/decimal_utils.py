"""
Decimal utilities for fixed-point amounts and prices.
Prevents scientific notation and keeps integer amounts exact.
"""

from decimal import Decimal, getcontext, localcontext, ROUND_DOWN
from typing import Optional, Union

# Reserves and supplies can exceed 64 bits, keep plenty of precision
getcontext().prec = 80


class PriceFormatter:
    """Utility class for fixed-point formatting."""

    @staticmethod
    def from_nano(value: Optional[int], decimals: int = 9) -> str:
        """
        Render a raw integer amount as a decimal string.

        Args:
            value: Raw on-chain amount (nano units for 9 decimals)
            decimals: Number of fractional digits encoded in ``value``

        Returns:
            String without scientific notation and without trailing zeros,
            ``"nil"`` for a missing amount
        """
        if value is None:
            return "nil"

        with localcontext() as ctx:
            # scaleb rounds to the context precision
            ctx.prec = max(ctx.prec, len(str(abs(value))) + 1)
            scaled = Decimal(value).scaleb(-decimals)
            return PriceFormatter.format_price(scaled, max_decimals=max(decimals, 0))

    @staticmethod
    def format_price(value: Union[int, str, Decimal], max_decimals: int = 18) -> str:
        """
        Format a decimal value without scientific notation.

        Truncates (never rounds) past ``max_decimals``.
        """
        if value is None:
            return "0"

        decimal_value = Decimal(str(value)) if not isinstance(value, Decimal) else value
        if decimal_value == 0:
            return "0"

        # quantize fails when the result needs more digits than the context holds
        digits = max(decimal_value.adjusted() + 1, 1) + max(max_decimals, 0)
        with localcontext() as ctx:
            ctx.prec = max(ctx.prec, digits + 1)
            if max_decimals > 0:
                quantum = Decimal(1).scaleb(-max_decimals)
                decimal_value = decimal_value.quantize(quantum, rounding=ROUND_DOWN)
                formatted = format(decimal_value, "f")
                if "." in formatted:
                    formatted = formatted.rstrip("0").rstrip(".")
            else:
                formatted = format(decimal_value.to_integral_value(rounding=ROUND_DOWN), "f")

        if not formatted or formatted in ("-0", "."):
            return "0"
        return formatted

    @staticmethod
    def market_cap(
        total_supply: Optional[int],
        supply_decimals: Optional[int],
        price_value: int,
        price_decimals: int
    ) -> Optional[Decimal]:
        """
        Estimate market capitalisation as ``supply * price``.

        Args:
            total_supply: Raw jetton total supply
            supply_decimals: Jetton decimals
            price_value: Fixed-point price value
            price_decimals: Fixed-point price scale

        Returns:
            Market cap as Decimal, or None when supply is unknown
        """
        if total_supply is None or supply_decimals is None:
            return None

        supply = Decimal(total_supply).scaleb(-supply_decimals)
        price = Decimal(price_value).scaleb(-price_decimals)
        return supply * price


# Convenient functions for direct use
def from_nano(value: Optional[int], decimals: int = 9) -> str:
    """Render a raw amount as decimal string."""
    return PriceFormatter.from_nano(value, decimals)

def format_price(value: Union[int, str, Decimal], max_decimals: int = 18) -> str:
    """Format price value to avoid scientific notation."""
    return PriceFormatter.format_price(value, max_decimals)

def market_cap(total_supply, supply_decimals, price_value: int, price_decimals: int) -> Optional[Decimal]:
    """Estimate market cap."""
    return PriceFormatter.market_cap(total_supply, supply_decimals, price_value, price_decimals)
