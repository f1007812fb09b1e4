"""Indian-locale (en-IN) number formatting for view models.

Digits are grouped as 12,34,56,789: the last three digits form one group and
every group to the left of it has two digits.
"""
from __future__ import annotations


def _group_indian(integer_digits: str) -> str:
    if len(integer_digits) <= 3:
        return integer_digits
    head, tail = integer_digits[:-3], integer_digits[-3:]
    groups: list[str] = []
    while len(head) > 2:
        groups.insert(0, head[-2:])
        head = head[:-2]
    if head:
        groups.insert(0, head)
    return ",".join(groups + [tail])


def _format(value: float, min_decimals: int, max_decimals: int) -> str:
    text = f"{abs(value):.{max_decimals}f}"
    integer, _, fraction = text.partition(".")
    fraction = fraction.rstrip("0")
    if len(fraction) < min_decimals:
        fraction = fraction.ljust(min_decimals, "0")
    sign = "-" if value < 0 and (integer.strip("0") or fraction.strip("0")) else ""
    grouped = _group_indian(integer)
    return f"{sign}{grouped}.{fraction}" if fraction else f"{sign}{grouped}"


def format_price(price: float) -> str:
    """Two fixed decimals: 21347.5 -> '21,347.50'."""
    return _format(price, 2, 2)


def format_number(num: float) -> str:
    """Up to three decimals, trailing zeros dropped: 1234567 -> '12,34,567'."""
    return _format(num, 0, 3)


def format_pnl(pnl: float) -> str:
    sign = "+" if pnl >= 0 else "-"
    return f"{sign}₹{format_number(abs(pnl))}"
