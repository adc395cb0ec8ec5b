import unittest
from datetime import datetime

from payment_requests.formatting import (
    currency_symbol,
    fmt_currency,
    fmt_date,
    fmt_money,
    fmt_qty,
    wrap_text,
)


class FixedWidthFonts:
    """Every character is 5 points wide."""

    def text_width(self, text: str, size: int, bold: bool = False) -> float:
        return len(text) * 5.0


class FormattingTests(unittest.TestCase):
    def test_fmt_date_formats_strings_and_datetimes(self) -> None:
        self.assertEqual(fmt_date("2026-01-15"), "Jan 15, 2026")
        self.assertEqual(fmt_date(datetime(2024, 3, 15, 9, 30)), "Mar 15, 2024")

    def test_fmt_date_returns_original_for_invalid_input(self) -> None:
        raw = "not-a-date"
        self.assertEqual(fmt_date(raw), raw)
        self.assertEqual(fmt_date(None), "")

    def test_fmt_qty_handles_integer_and_float_values(self) -> None:
        self.assertEqual(fmt_qty(3), "3")
        self.assertEqual(fmt_qty(80.0), "80")
        self.assertEqual(fmt_qty(2.5), "2.5")

    def test_currency_formatting_uses_symbol_table(self) -> None:
        self.assertEqual(fmt_currency(16200), "$16,200.00")
        self.assertEqual(fmt_currency(9.5, "gbp"), "£9.50")
        self.assertEqual(fmt_currency(1234.5, "AUD"), "AUD 1,234.50")
        self.assertEqual(currency_symbol("EUR"), "€")

    def test_fmt_money_places_sign_before_symbol(self) -> None:
        self.assertEqual(fmt_money(-12.5, "$"), "-$12.50")

    def test_wrap_text_breaks_on_words_and_long_tokens(self) -> None:
        fonts = FixedWidthFonts()
        self.assertEqual(wrap_text(fonts, "aaa bbb ccc", 40, 10), ["aaa bbb", "ccc"])
        self.assertEqual(wrap_text(fonts, "abcdefghij", 25, 10), ["abcde", "fghij"])
        self.assertEqual(wrap_text(fonts, "", 25, 10), [])


if __name__ == "__main__":
    unittest.main()
