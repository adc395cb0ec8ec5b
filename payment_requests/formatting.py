"""Formatting helpers for amounts, quantities, dates and wrapped text."""

from __future__ import annotations

from datetime import datetime
from typing import Any, List, Protocol

from dateutil import parser as dateutil_parser

CURRENCY_SYMBOLS = {
    "USD": "$",
    "EUR": "€",
    "GBP": "£",
}


class TextWidthProvider(Protocol):
    def text_width(self, text: str, size: int, bold: bool = False) -> float:
        ...


def currency_symbol(currency: str) -> str:
    code = str(currency or "USD").upper()
    return CURRENCY_SYMBOLS.get(code, f"{code} ")


def fmt_money(amount: float, symbol: str) -> str:
    if amount < 0:
        return f"-{symbol}{-amount:,.2f}"
    return f"{symbol}{amount:,.2f}"


def fmt_currency(amount: float, currency: str = "USD") -> str:
    return fmt_money(amount, currency_symbol(currency))


def fmt_qty(qty: Any) -> str:
    try:
        quantity = float(qty)
        if quantity.is_integer():
            return str(int(quantity))
        return str(quantity)
    except (TypeError, ValueError):
        return str(qty)


def fmt_rate(rate: float) -> str:
    return fmt_qty(rate)


def fmt_date(value: Any) -> str:
    """Format a datetime or date string as 'Mar 14, 2025'."""
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.strftime("%b %d, %Y")
    raw = str(value).strip()
    if not raw:
        return raw
    try:
        dt = dateutil_parser.parse(raw)
        return dt.strftime("%b %d, %Y")
    except (ValueError, OverflowError):
        return raw


def fmt_timestamp(value: datetime) -> str:
    return value.strftime("%b %d, %Y at %H:%M")


def wrap_text(
    fonts_obj: TextWidthProvider,
    text: str,
    max_width: float,
    font_size: int,
    bold: bool = False,
) -> List[str]:
    def line_width(value: str) -> float:
        return fonts_obj.text_width(value, font_size, bold=bold)

    def wrap_paragraph(paragraph: str) -> List[str]:
        words = paragraph.split()
        if not words:
            return []

        lines: List[str] = []
        current = ""
        for word in words:
            candidate = word if not current else f"{current} {word}"
            if line_width(candidate) <= max_width:
                current = candidate
                continue

            if current:
                lines.append(current)

            # Hard-break words wider than the column.
            chunk = ""
            for char in word:
                if chunk and line_width(chunk + char) > max_width:
                    lines.append(chunk)
                    chunk = char
                else:
                    chunk += char
            current = chunk

        if current:
            lines.append(current)
        return lines

    result: List[str] = []
    for paragraph in text.split("\n"):
        result.extend(wrap_paragraph(paragraph))
    return result
