"""
金额工具

中间计算一律保持Decimal全精度，只在最终总额处舍入一次。
"""

from decimal import Decimal, ROUND_HALF_UP

Money = Decimal

ZERO = Decimal("0")
CENT = Decimal("0.01")


def D(x) -> Money:
    return x if isinstance(x, Decimal) else Decimal(str(x or "0"))


def round_money(x) -> Money:
    return D(x).quantize(CENT, rounding=ROUND_HALF_UP)


def clamp_non_negative(x) -> Money:
    x = D(x)
    return x if x > ZERO else ZERO


CURRENCY_SYMBOLS = {"ZAR": "R", "USD": "$", "EUR": "€", "GBP": "£"}


def format_money(x, currency: str = "ZAR") -> str:
    """用于提示文案，例如 R250.00"""
    symbol = CURRENCY_SYMBOLS.get(currency.upper(), f"{currency.upper()} ")
    return f"{symbol}{round_money(x):,.2f}"
