"""Fixed-point conversion between smallest units and decimal strings"""

import re
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Union

UNITS = {
    "wei": 0,
    "kwei": 3,
    "mwei": 6,
    "gwei": 9,
    "szabo": 12,
    "finney": 15,
    "ether": 18,
}

_DECIMAL_RE = re.compile(r"^(-)?(\d*)(?:\.(\d*))?$")

IntLike = Union[int, str]
UnitLike = Union[int, str]


def _resolve_decimals(unit: UnitLike) -> int:
    if isinstance(unit, str):
        if unit not in UNITS:
            raise ValueError(f"Unknown unit: {unit}")
        return UNITS[unit]
    if unit < 0:
        raise ValueError(f"Invalid decimals: {unit}")
    return int(unit)


def _to_int(value: IntLike) -> int:
    if isinstance(value, bool):
        raise ValueError(f"Invalid integer value: {value}")
    if isinstance(value, int):
        return value
    text = str(value).strip()
    if text.lower().startswith(("0x", "-0x")):
        return int(text, 16)
    return int(text)


def format_units(value: IntLike, decimals: UnitLike = 18) -> str:
    """
    Format an integer amount of smallest units as a decimal string.

    The result always carries at least one fractional digit ("1.0") and
    has trailing zeros stripped otherwise.
    """
    places = _resolve_decimals(decimals)
    amount = _to_int(value)

    sign = "-" if amount < 0 else ""
    whole, fraction = divmod(abs(amount), 10**places)

    fraction_text = str(fraction).rjust(places, "0").rstrip("0") if places else ""
    return f"{sign}{whole}.{fraction_text or '0'}"


def parse_units(value: Union[str, int, Decimal], decimals: UnitLike = 18) -> int:
    """Parse a decimal string into an integer amount of smallest units"""
    places = _resolve_decimals(decimals)
    text = format(value, "f") if isinstance(value, Decimal) else str(value).strip()

    match = _DECIMAL_RE.match(text)
    if not match or not (match.group(2) or match.group(3)):
        raise ValueError(f"Invalid decimal value: {value!r}")

    negative, whole, fraction = match.group(1), match.group(2) or "0", (match.group(3) or "").rstrip("0")
    if len(fraction) > places:
        raise ValueError(f"Too many decimals for {places}-decimal unit: {value!r}")

    amount = int(whole) * 10**places + int(fraction.ljust(places, "0") or "0")
    return -amount if negative else amount


def wei_to_ether(wei: IntLike, decimals: UnitLike = 18) -> str:
    return format_units(wei, decimals)


def ether_to_wei(ether: str, decimals: UnitLike = 18) -> int:
    return parse_units(ether, decimals)


def format_matic(wei: IntLike) -> str:
    return format_units(wei, "ether")


def parse_matic(matic: str) -> int:
    return parse_units(matic, "ether")


def format_token_amount(amount: IntLike, decimals: int, display_decimals: Optional[int] = None) -> str:
    """Format a token amount, optionally rounded to a fixed number of places"""
    formatted = format_units(amount, decimals)
    if display_decimals is None:
        return formatted
    quantum = Decimal(1).scaleb(-display_decimals)
    return str(Decimal(formatted).quantize(quantum, rounding=ROUND_HALF_UP))


def parse_token_amount(amount: str, decimals: int) -> int:
    return parse_units(amount, decimals)


def gwei_to_wei(gwei: Union[str, int]) -> int:
    return parse_units(str(gwei), "gwei")


def wei_to_gwei(wei: IntLike) -> str:
    return format_units(wei, "gwei")


def format_gas_price(wei: IntLike) -> str:
    gwei = Decimal(wei_to_gwei(wei)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    return f"{gwei} Gwei"


def calculate_transaction_cost(gas_limit: IntLike, gas_price: IntLike) -> int:
    return _to_int(gas_limit) * _to_int(gas_price)


def format_transaction_cost(gas_limit: IntLike, gas_price: IntLike, symbol: str = "MATIC") -> str:
    cost = format_units(calculate_transaction_cost(gas_limit, gas_price), "ether")
    return f"{cost} {symbol}"


def format_large_number(value: IntLike) -> str:
    return f"{_to_int(value):,}"


def hex_to_decimal(value: str) -> int:
    return int(value, 16)


def decimal_to_hex(value: IntLike) -> str:
    """Encode an integer as a JSON-RPC hex quantity (no leading zeros)"""
    return hex(_to_int(value))


def to_quantity(value: Optional[IntLike]) -> Optional[str]:
    """Convert an int or numeric string to a hex quantity; hex input passes through"""
    if value is None or value == "":
        return None
    if isinstance(value, str) and value.strip().lower().startswith("0x"):
        return value.strip()
    return decimal_to_hex(value)
