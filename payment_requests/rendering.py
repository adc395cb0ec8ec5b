"""Payment request PDF rendering logic."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, List, Optional, Tuple

from fpdf import FPDF  # type: ignore

from .dates import utc_now
from .errors import RenderError
from .fonts import FontManager
from .formatting import currency_symbol, fmt_date, fmt_money, fmt_qty, fmt_rate, fmt_timestamp, wrap_text
from .pdf_constants import (
    BAR_H,
    BAR_RADIUS,
    BAR_TEXT_OFFSET,
    COL_AMOUNT_RIGHT,
    COL_DESC_W,
    COL_DESC_X,
    COL_ITEM_X,
    COL_QTY_CENTER,
    COL_RATE_RIGHT,
    COLOR_BAR,
    COLOR_BAR_TEXT,
    COLOR_LABEL,
    COLOR_MUTED,
    COLOR_RULE,
    COLOR_TEXT,
    COLOR_TITLE,
    FONT_SIZE_HEADING,
    FONT_SIZE_NORMAL,
    FONT_SIZE_SMALL,
    FONT_SIZE_TITLE,
    FONT_SIZE_URGENCY,
    FOOTER_Y,
    ITEM_LINE_H,
    ITEM_NAME_W,
    ITEM_ROW_H,
    MARGIN_LEFT,
    MARGIN_RIGHT,
    MARGIN_TOP,
    META_FIRST_Y,
    META_LABEL_RIGHT,
    META_LINE_H,
    PAGE_BOTTOM,
    PARTY_COLUMN_W,
    PARTY_FIRST_Y,
    PARTY_LABEL_Y,
    PARTY_LINE_H,
    PROJECT_X,
    SECTION_GAP,
    TITLE_Y,
    TOTAL_ROW_H,
    TOTALS_LABEL_RIGHT,
    URGENCY_COLORS,
    URGENCY_Y,
)
from .records import PaymentRequest, Urgency

logger = logging.getLogger(__name__)


class _Document(FPDF):
    """FPDF subclass that delegates its per-page footer to the renderer."""

    footer_callback: Optional[Callable[[], None]] = None

    def footer(self) -> None:
        if self.footer_callback is not None:
            self.footer_callback()


class PaymentRequestRenderer:
    def __init__(self, request: PaymentRequest, generated_at: Optional[datetime] = None) -> None:
        self.request = request
        self.generated_at = generated_at or utc_now()
        self.symbol = currency_symbol(request.currency)

        self.pdf = _Document(unit="pt", format="letter")
        self.pdf.set_auto_page_break(False)
        self.fonts = FontManager(self.pdf)
        self.pdf.set_title(self.fonts.clean(f"Payment Request - {request.request_number}"))
        self.pdf.set_subject(self.fonts.clean(f"Payment Request for {request.project.name}"))
        self.pdf.set_author(self.fonts.clean(request.client.name))
        self.pdf.set_creator("payment-requests")
        self.pdf.footer_callback = self._draw_footer
        self.pdf.add_page()
        self.y = MARGIN_TOP

    def _money(self, amount: float) -> str:
        return fmt_money(amount, self.symbol)

    def _new_page(self) -> None:
        self.pdf.add_page()
        self.y = MARGIN_TOP

    def _ensure_space(self, height: float) -> bool:
        if self.y + height <= PAGE_BOTTOM:
            return False
        self._new_page()
        return True

    def _draw_heading(self, x: float, y: float, text: str) -> None:
        self.fonts.draw_text(x, y, text, FONT_SIZE_HEADING, COLOR_TITLE, bold=True)

    def _draw_block(self, x: float, y: float, lines: List[Tuple[str, bool]]) -> float:
        for text, bold in lines:
            for wrapped in wrap_text(self.fonts, text, PARTY_COLUMN_W, FONT_SIZE_NORMAL, bold=bold) or [""]:
                self.fonts.draw_text(x, y, wrapped, FONT_SIZE_NORMAL, COLOR_TEXT, bold=bold)
                y += PARTY_LINE_H
        return y

    def _draw_header(self) -> None:
        request = self.request
        self.fonts.draw_text(MARGIN_LEFT, TITLE_Y, "PAYMENT REQUEST", FONT_SIZE_TITLE, COLOR_TITLE, bold=True)

        meta = [
            ("Request #:", request.request_number),
            ("Date:", fmt_date(request.issue_date)),
            ("Due Date:", fmt_date(request.due_date)),
        ]
        for index, (label, value) in enumerate(meta):
            y = META_FIRST_Y + index * META_LINE_H
            self.fonts.draw_right(META_LABEL_RIGHT, y, label, FONT_SIZE_NORMAL, COLOR_LABEL)
            self.fonts.draw_right(MARGIN_RIGHT, y, value, FONT_SIZE_NORMAL, COLOR_TEXT)

        if request.urgency is not Urgency.NORMAL:
            self.fonts.draw_text(
                MARGIN_LEFT,
                URGENCY_Y,
                request.urgency.value.upper(),
                FONT_SIZE_URGENCY,
                URGENCY_COLORS[request.urgency.value],
                bold=True,
            )

    def _draw_parties(self) -> None:
        client = self.request.client
        project = self.request.project

        self._draw_heading(MARGIN_LEFT, PARTY_LABEL_Y, "Bill To:")
        client_lines = [(client.name, True)]
        client_lines.extend((value, False) for value in (client.full_address, client.email, client.phone) if value)
        left_end = self._draw_block(MARGIN_LEFT, PARTY_FIRST_Y, client_lines)

        self._draw_heading(PROJECT_X, PARTY_LABEL_Y, "Project:")
        project_lines = [(project.name, True)]
        if project.description:
            project_lines.append((project.description, False))
        if project.start_date:
            project_lines.append((f"Start: {fmt_date(project.start_date)}", False))
        if project.end_date:
            project_lines.append((f"End: {fmt_date(project.end_date)}", False))
        right_end = self._draw_block(PROJECT_X, PARTY_FIRST_Y, project_lines)

        self.y = max(left_end, right_end) + SECTION_GAP

    def _draw_notes(self) -> None:
        self._draw_heading(MARGIN_LEFT, self.y, "Payment Request Details:")
        self.y += PARTY_LINE_H + 2
        notes = self.request.notes.strip()
        if notes:
            for line in wrap_text(self.fonts, notes, MARGIN_RIGHT - MARGIN_LEFT, FONT_SIZE_NORMAL):
                self._ensure_space(PARTY_LINE_H)
                self.fonts.draw_text(MARGIN_LEFT, self.y, line, FONT_SIZE_NORMAL, COLOR_TEXT)
                self.y += PARTY_LINE_H
        self.y += SECTION_GAP - PARTY_LINE_H

    def _draw_table_header(self) -> None:
        bar_y = self.y
        self.pdf.set_fill_color(*COLOR_BAR)
        self.pdf.rect(
            MARGIN_LEFT - 6,
            bar_y,
            MARGIN_RIGHT - MARGIN_LEFT + 12,
            BAR_H,
            style="F",
            round_corners=True,
            corner_radius=BAR_RADIUS,
        )
        text_y = bar_y + BAR_TEXT_OFFSET
        self.fonts.draw_text(COL_ITEM_X, text_y, "Item", FONT_SIZE_SMALL, COLOR_BAR_TEXT, bold=True)
        self.fonts.draw_text(COL_DESC_X, text_y, "Description", FONT_SIZE_SMALL, COLOR_BAR_TEXT, bold=True)
        self.fonts.draw_centered(COL_QTY_CENTER, text_y, "Qty", FONT_SIZE_SMALL, COLOR_BAR_TEXT, bold=True)
        self.fonts.draw_right(COL_RATE_RIGHT, text_y, "Unit Price", FONT_SIZE_SMALL, COLOR_BAR_TEXT, bold=True)
        self.fonts.draw_right(COL_AMOUNT_RIGHT, text_y, "Amount", FONT_SIZE_SMALL, COLOR_BAR_TEXT, bold=True)
        self.y = bar_y + BAR_H + ITEM_ROW_H

    def _draw_items(self) -> None:
        self._ensure_space(BAR_H + ITEM_ROW_H * 2)
        self._draw_table_header()

        for index, item in enumerate(self.request.items, start=1):
            name = item.name.strip() or f"Item {index}"
            name_lines = wrap_text(self.fonts, name, ITEM_NAME_W, FONT_SIZE_NORMAL, bold=True) or [name]
            desc_lines = wrap_text(self.fonts, item.description.strip(), COL_DESC_W, FONT_SIZE_SMALL)
            line_count = max(len(name_lines), len(desc_lines), 1)
            row_h = (line_count - 1) * ITEM_LINE_H + ITEM_ROW_H

            if self._ensure_space(row_h):
                self._draw_table_header()

            y = self.y
            for offset, line in enumerate(name_lines):
                self.fonts.draw_text(COL_ITEM_X, y + offset * ITEM_LINE_H, line, FONT_SIZE_NORMAL, COLOR_TEXT, bold=True)
            for offset, line in enumerate(desc_lines):
                self.fonts.draw_text(COL_DESC_X, y + offset * ITEM_LINE_H, line, FONT_SIZE_SMALL, COLOR_MUTED)

            amount = item.quantity * item.unit_price
            self.fonts.draw_centered(COL_QTY_CENTER, y, fmt_qty(item.quantity), FONT_SIZE_NORMAL, COLOR_TEXT)
            self.fonts.draw_right(COL_RATE_RIGHT, y, self._money(item.unit_price), FONT_SIZE_NORMAL, COLOR_TEXT)
            self.fonts.draw_right(COL_AMOUNT_RIGHT, y, self._money(amount), FONT_SIZE_NORMAL, COLOR_TEXT)
            self.y += row_h

    def _draw_totals(self) -> None:
        request = self.request
        rows: List[Tuple[str, float, bool]] = [("Subtotal:", request.subtotal, False)]
        if request.discount > 0:
            rows.append((f"Discount ({fmt_rate(request.discount_rate)}%):", request.discount, False))
        if request.tax > 0:
            rows.append((f"Tax ({fmt_rate(request.tax_rate)}%):", request.tax, False))
        rows.append(("Total:", request.total, True))

        self._ensure_space(TOTAL_ROW_H * (len(rows) + 1))
        self.pdf.set_draw_color(*COLOR_RULE)
        self.pdf.line(TOTALS_LABEL_RIGHT - 120, self.y - ITEM_ROW_H / 2, MARGIN_RIGHT, self.y - ITEM_ROW_H / 2)

        for label, amount, bold in rows:
            self.fonts.draw_right(TOTALS_LABEL_RIGHT, self.y, label, FONT_SIZE_NORMAL, COLOR_LABEL, bold=bold)
            self.fonts.draw_right(COL_AMOUNT_RIGHT, self.y, self._money(amount), FONT_SIZE_NORMAL, COLOR_TEXT, bold=bold)
            self.y += TOTAL_ROW_H
        self.y += SECTION_GAP - TOTAL_ROW_H

    def _draw_payment_info(self) -> None:
        methods = self.request.payment_methods
        if methods:
            self._ensure_space(PARTY_LINE_H * (len(methods) + 2))
            self._draw_heading(MARGIN_LEFT, self.y, "Payment Methods:")
            self.y += PARTY_LINE_H + 2
            for method in methods:
                self._ensure_space(PARTY_LINE_H)
                self.fonts.draw_text(MARGIN_LEFT, self.y, f"• {method}", FONT_SIZE_NORMAL, COLOR_TEXT)
                self.y += PARTY_LINE_H
            self.y += SECTION_GAP - PARTY_LINE_H

        terms = wrap_text(self.fonts, self.request.terms, MARGIN_RIGHT - MARGIN_LEFT, FONT_SIZE_NORMAL)
        self._ensure_space(PARTY_LINE_H * (len(terms) + 2))
        self._draw_heading(MARGIN_LEFT, self.y, "Terms:")
        self.y += PARTY_LINE_H + 2
        for line in terms:
            self._ensure_space(PARTY_LINE_H)
            self.fonts.draw_text(MARGIN_LEFT, self.y, line, FONT_SIZE_NORMAL, COLOR_TEXT)
            self.y += PARTY_LINE_H

    def _draw_footer(self) -> None:
        generated = f"Generated on {fmt_timestamp(self.generated_at)}"
        self.fonts.draw_text(MARGIN_LEFT, FOOTER_Y, generated, FONT_SIZE_SMALL, COLOR_MUTED, italic=True)
        self.fonts.draw_right(
            MARGIN_RIGHT,
            FOOTER_Y,
            f"Payment Request ID: {self.request.id}",
            FONT_SIZE_SMALL,
            COLOR_MUTED,
        )

    def render(self) -> bytes:
        self._draw_header()
        self._draw_parties()
        self._draw_notes()
        self._draw_items()
        self._draw_totals()
        self._draw_payment_info()

        pdf_blob = self.pdf.output()
        if isinstance(pdf_blob, (bytes, bytearray)):
            return bytes(pdf_blob)
        raise RenderError(f"Unexpected PDF output type: {type(pdf_blob).__name__}")


def render_payment_request(request: PaymentRequest) -> bytes:
    try:
        return PaymentRequestRenderer(request).render()
    except RenderError:
        raise
    except Exception as exc:
        logger.error("Rendering %s failed: %s", request.request_number, exc, exc_info=True)
        raise RenderError(f"Failed to generate PDF: {exc}") from exc
