"""Turns a client, a project and line items into a priced, numbered payment request."""

from __future__ import annotations

import copy
import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Mapping, Optional, Sequence

from .config import DEFAULT_DUE_DAYS
from .dates import coerce_datetime, utc_now
from .errors import BuildError
from .ledger import Ledger, next_request_number
from .models import Client, Item, Project, new_id, to_number
from .records import PaymentRequest, RequestStatus, Urgency

logger = logging.getLogger(__name__)

DEFAULT_TERMS = "Net 30"
DEFAULT_CURRENCY = "USD"


@dataclass
class RequestOptions:
    request_number: Optional[str] = None
    issue_date: Any = None
    due_date: Any = None
    notes: str = ""
    terms: str = DEFAULT_TERMS
    tax_rate: float = 0
    discount_rate: float = 0
    currency: str = DEFAULT_CURRENCY
    payment_methods: List[str] = field(default_factory=list)
    urgency: Any = Urgency.NORMAL

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "RequestOptions":
        """Read the camelCase option keys accepted by the HTTP API."""
        data = data or {}
        try:
            payment_methods = data.get("paymentMethods", data.get("payment_methods")) or []
            if not isinstance(payment_methods, (list, tuple)):
                raise BuildError("'paymentMethods' must be an array.")
            return cls(
                request_number=data.get("requestNumber") or data.get("request_number") or None,
                issue_date=data.get("issueDate", data.get("issue_date")),
                due_date=data.get("dueDate", data.get("due_date")),
                notes=str(data.get("notes") or ""),
                terms=str(data.get("terms") or DEFAULT_TERMS),
                tax_rate=to_number(data.get("taxRate", data.get("tax_rate", 0))),
                discount_rate=to_number(data.get("discountRate", data.get("discount_rate", 0))),
                currency=str(data.get("currency") or DEFAULT_CURRENCY),
                payment_methods=[str(method) for method in payment_methods],
                urgency=data.get("urgency") or Urgency.NORMAL,
            )
        except ValueError as exc:
            if isinstance(exc, BuildError):
                raise
            raise BuildError(str(exc)) from exc


@dataclass(frozen=True)
class RequestTotals:
    subtotal: float
    discount: float
    taxable_amount: float
    tax: float
    total: float


def compute_totals(items: Sequence[Item], discount_rate: float = 0, tax_rate: float = 0) -> RequestTotals:
    """Price the raw ``quantity * unit_price`` sum with request-level rates.

    Per-item ``tax_rate`` and ``discount_rate`` are deliberately not applied
    here; they only drive each item's own getters.
    """
    subtotal = sum((item.quantity * item.unit_price for item in items), 0)
    discount = subtotal * (discount_rate / 100)
    taxable_amount = subtotal - discount
    tax = taxable_amount * (tax_rate / 100)
    total = taxable_amount + tax
    return RequestTotals(
        subtotal=subtotal,
        discount=discount,
        taxable_amount=taxable_amount,
        tax=tax,
        total=total,
    )


def default_due_date(issue_date: datetime, days: int = DEFAULT_DUE_DAYS) -> datetime:
    return issue_date + timedelta(days=days)


def _require_finite(label: str, value: Any) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        raise BuildError(f"{label} must be a finite number, got {value!r}.")


class RequestBuilder:
    """Builds payment requests and records them in ``ledger``."""

    def __init__(self, ledger: Ledger, due_days: int = DEFAULT_DUE_DAYS) -> None:
        self.ledger = ledger
        self.due_days = due_days

    def _check_inputs(self, items: Sequence[Item], options: RequestOptions) -> Urgency:
        if not items:
            raise BuildError("At least one item is required.")
        for index, item in enumerate(items, start=1):
            _require_finite(f"Item {index} quantity", item.quantity)
            _require_finite(f"Item {index} unit price", item.unit_price)
        _require_finite("Tax rate", options.tax_rate)
        _require_finite("Discount rate", options.discount_rate)
        try:
            return Urgency(options.urgency)
        except ValueError as exc:
            allowed = ", ".join(urgency.value for urgency in Urgency)
            raise BuildError(f"Unknown urgency {options.urgency!r}; expected one of {allowed}.") from exc

    def build(
        self,
        client: Client,
        project: Project,
        items: Sequence[Item],
        options: Optional[RequestOptions] = None,
    ) -> PaymentRequest:
        options = options or RequestOptions()
        urgency = self._check_inputs(items, options)

        try:
            issue_date = coerce_datetime(options.issue_date) or utc_now()
            due_date = coerce_datetime(options.due_date) or default_due_date(issue_date, self.due_days)
        except ValueError as exc:
            raise BuildError(str(exc)) from exc

        totals = compute_totals(items, options.discount_rate, options.tax_rate)
        client_snapshot = copy.deepcopy(client)
        project_snapshot = copy.deepcopy(project)
        item_snapshots = tuple(copy.deepcopy(item) for item in items)

        with self.ledger.lock:
            request_number = options.request_number or next_request_number(self.ledger, issue_date)
            now = utc_now()
            record = PaymentRequest(
                id=new_id(),
                request_number=request_number,
                issue_date=issue_date,
                due_date=due_date,
                client=client_snapshot,
                project=project_snapshot,
                items=item_snapshots,
                subtotal=totals.subtotal,
                discount=totals.discount,
                discount_rate=options.discount_rate,
                taxable_amount=totals.taxable_amount,
                tax=totals.tax,
                tax_rate=options.tax_rate,
                total=totals.total,
                notes=options.notes,
                terms=options.terms,
                currency=options.currency,
                payment_methods=tuple(options.payment_methods),
                urgency=urgency,
                status=RequestStatus.PENDING,
                created_at=now,
                updated_at=now,
            )
            self.ledger.append(record)

        logger.info(
            "Built payment request %s for %s: total %.2f %s",
            record.request_number,
            client.name or "<unnamed client>",
            record.total,
            record.currency,
        )
        return record

    def build_from_payload(
        self,
        client: Mapping[str, Any],
        project: Mapping[str, Any],
        items: Sequence[Mapping[str, Any]],
        options: Optional[Mapping[str, Any]] = None,
    ) -> PaymentRequest:
        """Build from the JSON shapes accepted by the HTTP API."""
        try:
            client_obj = Client.from_dict(client)
            project_obj = Project.from_dict(project)
            item_objs = [Item.from_dict(item) for item in items]
        except (TypeError, ValueError, AttributeError) as exc:
            raise BuildError(str(exc)) from exc
        return self.build(client_obj, project_obj, item_objs, RequestOptions.from_dict(options))


def demo_payload() -> Dict[str, Any]:
    return {
        "client": {"name": "Sample Client", "email": "client@example.com"},
        "project": {"name": "Sample Project", "description": "A sample project for demonstration"},
        "items": [
            {
                "name": "Sample Service",
                "description": "A sample service item",
                "quantity": 1,
                "unitPrice": 100,
            }
        ],
    }
