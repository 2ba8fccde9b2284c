"""Formatting and conversion utilities."""

import re

from vaults_client.constants import ASSET_DECIMALS
from vaults_client.errors import InvalidAmount

_DIGITS = re.compile(r"[0-9]+")


def as_int(value, *, default: int = 0) -> int:
    """Convert value to int, handling various types."""
    if value is None:
        return default
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, (bytes, bytearray)):
        return int.from_bytes(value, "big")
    if isinstance(value, str):
        v = value.strip()
        if v.startswith("0x"):
            return int(v, 16)
        return int(v)
    return int(value)


def normalize_hex_str(value) -> str:
    """Normalize hex string to 0x-prefixed format."""
    if isinstance(value, (bytes, bytearray)):
        return f"0x{value.hex()}"
    if hasattr(value, "hex") and not isinstance(value, str):
        hex_str = value.hex()
        return hex_str if hex_str.startswith("0x") else f"0x{hex_str}"
    s = str(value).strip()
    if s.lower().startswith("0x"):
        return f"0x{s[2:]}"
    return f"0x{s}"


def mul_div(a: int, b: int, denom: int) -> int:
    """floor(a * b / denom) in exact integer arithmetic."""
    if denom == 0:
        raise ZeroDivisionError("denom must be > 0")
    return (a * b) // denom


def parse_amount(value: str, decimals: int = ASSET_DECIMALS) -> int:
    """
    Parse a human decimal string ("12.5") into smallest units.

    The fractional part is padded or truncated to exactly `decimals` digits; nothing is rounded.
    """
    s = str(value).strip()
    if not s:
        raise InvalidAmount("amount is empty")
    whole, dot, fraction = s.partition(".")
    if dot and "." in fraction:
        raise InvalidAmount(f"invalid amount: {value!r}")
    whole = whole or "0"
    if not _DIGITS.fullmatch(whole):
        raise InvalidAmount(f"invalid amount: {value!r}")
    if fraction and not _DIGITS.fullmatch(fraction):
        raise InvalidAmount(f"invalid fractional part: {value!r}")
    padded = fraction.ljust(decimals, "0")[:decimals] if decimals > 0 else ""
    return int(whole) * 10**decimals + int(padded or "0")


def format_amount(amount: int, decimals: int = ASSET_DECIMALS) -> str:
    """Format smallest units as a decimal string with trailing fractional zeros stripped."""
    sign = "-" if amount < 0 else ""
    whole, fraction = divmod(abs(amount), 10**decimals)
    if decimals == 0:
        return f"{sign}{whole}"
    fraction_str = str(fraction).rjust(decimals, "0").rstrip("0")
    if not fraction_str:
        return f"{sign}{whole}"
    return f"{sign}{whole}.{fraction_str}"


def format_with_thousands_separators(formatted: str) -> str:
    """Insert thousands separators into the whole part of an already formatted amount."""
    whole, dot, fraction = formatted.partition(".")
    return f"{int(whole):,}{dot}{fraction}"


def format_amount_with_separators(amount: int, decimals: int = ASSET_DECIMALS) -> str:
    """format_amount followed by thousands separators."""
    return format_with_thousands_separators(format_amount(amount, decimals))


def format_asset(amount: int, *, symbol: str = "USDC", decimals: int = ASSET_DECIMALS) -> str:
    """Format an amount with its unit."""
    return f"{format_amount_with_separators(amount, decimals)} {symbol}"


def format_percentage(rate: float | None, *, decimals: int = 2) -> str:
    """Format a decimal rate (0.05) as a percentage (5.00%). Display only."""
    if rate is None:
        return "—"
    return f"{rate * 100:.{decimals}f}%"


def format_tvl(value: float | None, *, compact: bool = False, decimals: int = 2) -> str:
    """Format a TVL figure in dollars, optionally compacted (1.2M)."""
    if value is None:
        return "—"
    if compact:
        for threshold, suffix in ((1e9, "B"), (1e6, "M"), (1e3, "K")):
            if abs(value) >= threshold:
                return f"${value / threshold:.{decimals}f}{suffix}"
    return f"${value:,.{decimals}f}"


def format_address(address: str) -> str:
    """Truncate the middle of an address for display."""
    if len(address) <= 12:
        return address
    return f"{address[:6]}...{address[-4:]}"


def to_float(amount: int, decimals: int) -> float:
    """Convert a fixed-point integer to float. Display and rate math only, never for funds."""
    return amount / 10**decimals
