"""Helpers for estimating how many pages an items table needs."""

from __future__ import annotations

from .pdf_constants import CONT_PAGE_CAPACITY, FIRST_PAGE_CAPACITY


def estimate_page_count(item_count: int) -> int:
    """Lower bound on pages for ``item_count`` single-line rows."""
    if item_count <= FIRST_PAGE_CAPACITY:
        return 1
    remaining = item_count - FIRST_PAGE_CAPACITY
    return 1 + (remaining + CONT_PAGE_CAPACITY - 1) // CONT_PAGE_CAPACITY


def max_items_for_pages(page_count: int) -> int:
    if page_count <= 1:
        return FIRST_PAGE_CAPACITY
    return FIRST_PAGE_CAPACITY + CONT_PAGE_CAPACITY * (page_count - 1)
