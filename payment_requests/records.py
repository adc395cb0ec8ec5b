"""The payment request record stored in the ledger."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Tuple

from .dates import isoformat
from .models import Client, Item, Project


class Urgency(str, Enum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"


class RequestStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    PAID = "paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class PaymentRequest:
    """A priced, numbered request for payment.

    Client, project and items are snapshots taken when the request was
    built. Only ``status`` and ``updated_at`` ever change, and only through
    :meth:`Ledger.update_status`.
    """

    id: str
    request_number: str
    issue_date: datetime
    due_date: datetime
    client: Client
    project: Project
    items: Tuple[Item, ...]
    subtotal: float
    discount: float
    discount_rate: float
    taxable_amount: float
    tax: float
    tax_rate: float
    total: float
    notes: str
    terms: str
    currency: str
    payment_methods: Tuple[str, ...]
    urgency: Urgency
    status: RequestStatus
    created_at: datetime
    updated_at: datetime

    @property
    def pdf_filename(self) -> str:
        return f"{self.request_number}.pdf"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "requestNumber": self.request_number,
            "issueDate": isoformat(self.issue_date),
            "dueDate": isoformat(self.due_date),
            "client": self.client.to_dict(),
            "project": self.project.to_dict(),
            "items": [item.to_dict() for item in self.items],
            "subtotal": self.subtotal,
            "discount": self.discount,
            "discountRate": self.discount_rate,
            "taxableAmount": self.taxable_amount,
            "tax": self.tax,
            "taxRate": self.tax_rate,
            "total": self.total,
            "notes": self.notes,
            "terms": self.terms,
            "currency": self.currency,
            "paymentMethods": list(self.payment_methods),
            "urgency": self.urgency.value,
            "status": self.status.value,
            "createdAt": isoformat(self.created_at),
            "updatedAt": isoformat(self.updated_at),
        }
