"""Public package API for building, numbering and rendering payment requests."""

from __future__ import annotations

from .builder import RequestBuilder, RequestOptions, compute_totals
from .errors import BuildError, DependencyError, PaymentRequestError, RenderError
from .ledger import Ledger, next_request_number
from .models import Address, Client, Item, Project, ValidationResult
from .records import PaymentRequest, RequestStatus, Urgency


def render_payment_request(request: PaymentRequest) -> bytes:
    from .rendering import render_payment_request as _render_payment_request

    return _render_payment_request(request)


def run(host: str = "0.0.0.0", port: int = 3001) -> None:
    from .server import run as _run

    _run(host, port)


__all__ = [
    "Address",
    "BuildError",
    "Client",
    "DependencyError",
    "Item",
    "Ledger",
    "PaymentRequest",
    "PaymentRequestError",
    "Project",
    "RenderError",
    "RequestBuilder",
    "RequestOptions",
    "RequestStatus",
    "Urgency",
    "ValidationResult",
    "compute_totals",
    "next_request_number",
    "render_payment_request",
    "run",
]
