"""
NEAR Treasury Dashboard - Amount Formatting
============================================
Conversions between raw on-chain integers and human-readable decimals.
Everything goes through Decimal in a wide context; floats are never used.
"""

import math
from decimal import Context, Decimal, InvalidOperation, ROUND_HALF_UP, localcontext

from config import NEAR_DECIMALS

# 80 significant digits covers any u128 yocto amount with room to spare
WIDE = Context(prec=80, rounding=ROUND_HALF_UP)

TWO_PLACES = Decimal("0.01")


def to_decimal(value) -> Decimal:
    """Coerce an RPC/API value (str, int, Decimal, None) to Decimal. None and garbage are zero."""
    if value is None or value == "":
        return Decimal(0)
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        # Prices arrive as JSON numbers; go through repr to keep the literal digits
        value = repr(value)
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return Decimal(0)


def to_int(value) -> int:
    """Coerce a raw integer amount (usually a decimal string) to int."""
    if value is None or value == "":
        return 0
    if isinstance(value, int):
        return value
    try:
        return int(str(value))
    except ValueError:
        with localcontext(WIDE):
            return int(to_decimal(value))


def readable_amount(amount, decimals=18) -> Decimal:
    """Raw smallest-unit amount divided by 10^decimals, at full precision."""
    try:
        places = int(decimals)
    except (TypeError, ValueError):
        places = 18
    with localcontext(WIDE):
        return to_decimal(amount) / (Decimal(10) ** places)


def yocto_to_near(yocto) -> Decimal:
    return readable_amount(yocto, NEAR_DECIMALS)


def near_to_yocto(near) -> int:
    with localcontext(WIDE):
        return int(to_decimal(near) * (Decimal(10) ** NEAR_DECIMALS))


def round_near(yocto) -> Decimal:
    """yoctoNEAR to NEAR, rounded half-up to 2 places."""
    with localcontext(WIDE):
        return yocto_to_near(yocto).quantize(TWO_PLACES)


def format_near_amount(yocto) -> str:
    """Format yoctoNEAR as NEAR with 2 decimals, e.g. '0.99'."""
    return f"{round_near(yocto):f}"


def decimal_str(value) -> str:
    """Canonical fixed-point string: no exponent, no trailing fractional zeros."""
    text = f"{to_decimal(value):f}"
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    if text in ("-0", ""):
        return "0"
    return text


def _group_thousands(text: str) -> str:
    whole, _, frac = text.partition(".")
    sign = ""
    if whole.startswith("-"):
        sign, whole = "-", whole[1:]
    whole = f"{int(whole):,}"
    return f"{sign}{whole}.{frac}" if frac else f"{sign}{whole}"


def _trim(text: str) -> str:
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


def format_token_balance(amount, min_amount="0.01", max_decimals=8, always_max_decimals=False) -> str:
    """Token balance with 2 decimals, or up to max_decimals for dust amounts.

    Trailing zeros are trimmed and thousands separated: '1,234.5', '0.00001234'.
    """
    value = to_decimal(amount)
    if value == 0:
        return "0"
    if always_max_decimals or value < to_decimal(min_amount):
        places = max_decimals
    else:
        places = 2
    with localcontext(WIDE):
        formatted = f"{value.quantize(Decimal(1).scaleb(-places)):f}"
    return _group_thousands(_trim(formatted))


def format_token_amount(amount, token_price, min_usd_value="0.01") -> str:
    """Token amount with just enough precision that the last digit is worth about a cent."""
    value = to_decimal(amount)
    price = to_decimal(token_price)
    if value == 0 or price == 0:
        return "0"

    with localcontext(WIDE):
        usd_value = value * price
        required = max(0, math.ceil(-(TWO_PLACES / price).log10()))

        plain = f"{value:f}"
        first_non_zero = next((i for i, ch in enumerate(plain) if ch in "123456789"), -1)
        min_for_amount = first_non_zero if first_non_zero > 0 else 0

        if usd_value < to_decimal(min_usd_value):
            places = min(8, max(required + 2, min_for_amount))
        else:
            places = min(required, 8)

        formatted = f"{value.quantize(Decimal(1).scaleb(-places)):f}"
    return _group_thousands(_trim(formatted))


def format_usd_value(amount, token_price) -> str:
    """'$1,234.56', '< $0.01' for dust, '$0.00' when either side is missing."""
    value = to_decimal(amount)
    price = to_decimal(token_price)
    if value == 0 or price == 0:
        return "$0.00"
    with localcontext(WIDE):
        usd = value * price
        if usd < TWO_PLACES:
            return "< $0.01"
        return "$" + _group_thousands(f"{usd.quantize(TWO_PLACES):f}")
