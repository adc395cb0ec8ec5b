"""Client, project and line item records."""

from __future__ import annotations

import math
import re
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Callable, ClassVar, Dict, List, Mapping, Optional, Union

from .dates import coerce_datetime, isoformat, utc_now
from .formatting import fmt_currency, fmt_qty

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PHONE_RE = re.compile(r"^\+?[1-9]\d{0,15}$")
PHONE_SEPARATORS_RE = re.compile(r"[\s\-()]")

Number = Union[int, float]


def new_id() -> str:
    return str(uuid.uuid4())


@dataclass(frozen=True)
class ValidationResult:
    is_valid: bool
    errors: List[str]

    @classmethod
    def from_errors(cls, errors: List[str]) -> "ValidationResult":
        return cls(is_valid=not errors, errors=list(errors))

    def to_dict(self) -> Dict[str, Any]:
        return {"isValid": self.is_valid, "errors": list(self.errors)}


def to_number(value: Any) -> Number:
    if isinstance(value, bool):
        raise ValueError(f"Expected a number, got {value!r}")
    if isinstance(value, (int, float)):
        return value
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Expected a number, got {value!r}") from exc


def to_text(value: Any) -> str:
    return "" if value is None else str(value)


def to_bool(value: Any, default: bool) -> bool:
    if value is None:
        return default
    if not isinstance(value, bool):
        raise ValueError(f"Expected a boolean, got {value!r}")
    return value


def _pick(data: Mapping[str, Any], key: str, camel: Optional[str] = None, default: Any = None) -> Any:
    if key in data:
        return data[key]
    if camel is not None and camel in data:
        return data[camel]
    return default


class UpdatableMixin:
    """Applies whitelisted, typed field updates and refreshes ``updated_at``."""

    MUTABLE_FIELDS: ClassVar[Dict[str, Callable[[Any], Any]]] = {}

    def update(self, **changes: Any):
        unknown = sorted(key for key in changes if key not in self.MUTABLE_FIELDS)
        if unknown:
            raise ValueError(f"{type(self).__name__} fields cannot be updated: {', '.join(unknown)}")

        coerced = {key: self.MUTABLE_FIELDS[key](value) for key, value in changes.items()}
        for key, value in coerced.items():
            setattr(self, key, value)
        self.touch()
        return self

    def touch(self) -> None:
        self.updated_at = utc_now()


@dataclass
class Item(UpdatableMixin):
    name: str = ""
    description: str = ""
    quantity: Number = 1
    unit_price: Number = 0
    unit: str = "piece"
    category: str = ""
    sku: str = ""
    tax_rate: Number = 0
    discount_rate: Number = 0
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    MUTABLE_FIELDS: ClassVar[Dict[str, Callable[[Any], Any]]] = {
        "name": to_text,
        "description": to_text,
        "quantity": to_number,
        "unit_price": to_number,
        "unit": to_text,
        "category": to_text,
        "sku": to_text,
        "tax_rate": to_number,
        "discount_rate": to_number,
    }

    @classmethod
    def service(cls, **fields: Any) -> "Item":
        fields["unit"] = fields.get("unit") or "hour"
        fields["category"] = fields.get("category") or "Services"
        return cls(**fields)

    @classmethod
    def product(cls, **fields: Any) -> "Item":
        fields["unit"] = fields.get("unit") or "piece"
        fields["category"] = fields.get("category") or "Products"
        return cls(**fields)

    # Per-item rates only feed these getters; request totals ignore them.
    @property
    def subtotal(self) -> float:
        return self.quantity * self.unit_price

    @property
    def discount(self) -> float:
        return self.subtotal * (self.discount_rate / 100)

    @property
    def taxable_amount(self) -> float:
        return self.subtotal - self.discount

    @property
    def tax(self) -> float:
        return self.taxable_amount * (self.tax_rate / 100)

    @property
    def total(self) -> float:
        return self.subtotal - self.discount + self.tax

    @property
    def cost_per_unit(self) -> float:
        if not self.quantity:
            return 0.0
        return self.total / self.quantity

    @property
    def has_discount(self) -> bool:
        return self.discount_rate > 0

    @property
    def is_taxable(self) -> bool:
        return self.tax_rate > 0

    @property
    def quantity_with_unit(self) -> str:
        if self.quantity == 1:
            return f"1 {self.unit}"
        return f"{fmt_qty(self.quantity)} {self.unit}s"

    def formatted_unit_price(self, currency: str = "USD") -> str:
        return fmt_currency(self.unit_price, currency)

    def formatted_subtotal(self, currency: str = "USD") -> str:
        return fmt_currency(self.subtotal, currency)

    def formatted_total(self, currency: str = "USD") -> str:
        return fmt_currency(self.total, currency)

    def validate(self) -> ValidationResult:
        errors: List[str] = []
        if not self.name or not self.name.strip():
            errors.append("Item name is required")
        if self.quantity <= 0:
            errors.append("Quantity must be greater than 0")
        if self.unit_price < 0:
            errors.append("Unit price cannot be negative")
        if self.tax_rate < 0 or self.tax_rate > 100:
            errors.append("Tax rate must be between 0 and 100")
        if self.discount_rate < 0 or self.discount_rate > 100:
            errors.append("Discount rate must be between 0 and 100")
        return ValidationResult.from_errors(errors)

    def clone(self) -> "Item":
        now = utc_now()
        return replace(self, id=new_id(), created_at=now, updated_at=now)

    def summary(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "quantity": self.quantity,
            "unitPrice": self.unit_price,
            "unit": self.unit,
            "category": self.category,
            "sku": self.sku,
            "subtotal": self.subtotal,
            "discount": self.discount,
            "tax": self.tax,
            "total": self.total,
            "hasDiscount": self.has_discount,
            "isTaxable": self.is_taxable,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "quantity": self.quantity,
            "unitPrice": self.unit_price,
            "unit": self.unit,
            "category": self.category,
            "sku": self.sku,
            "taxRate": self.tax_rate,
            "discountRate": self.discount_rate,
            "createdAt": isoformat(self.created_at),
            "updatedAt": isoformat(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Item":
        item = cls(
            name=to_text(_pick(data, "name", default="")),
            description=to_text(_pick(data, "description", default="")),
            quantity=to_number(_pick(data, "quantity", default=1)),
            unit_price=to_number(_pick(data, "unit_price", "unitPrice", 0)),
            unit=to_text(_pick(data, "unit", default="piece")) or "piece",
            category=to_text(_pick(data, "category", default="")),
            sku=to_text(_pick(data, "sku", default="")),
            tax_rate=to_number(_pick(data, "tax_rate", "taxRate", 0)),
            discount_rate=to_number(_pick(data, "discount_rate", "discountRate", 0)),
        )
        _restore_identity(item, data)
        return item


@dataclass
class Address:
    street: str = ""
    city: str = ""
    state: str = ""
    zip_code: str = ""
    country: str = ""

    def parts(self) -> List[str]:
        return [part for part in (self.street, self.city, self.state, self.zip_code, self.country) if part]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "street": self.street,
            "city": self.city,
            "state": self.state,
            "zipCode": self.zip_code,
            "country": self.country,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Address":
        return cls(
            street=to_text(data.get("street")),
            city=to_text(data.get("city")),
            state=to_text(data.get("state")),
            zip_code=to_text(_pick(data, "zip_code", "zipCode", "")),
            country=to_text(data.get("country")),
        )


def to_address(value: Any) -> Union[str, Address]:
    if isinstance(value, Address):
        return value
    if isinstance(value, Mapping):
        return Address.from_dict(value)
    return to_text(value)


@dataclass
class Client(UpdatableMixin):
    name: str = ""
    email: str = ""
    phone: str = ""
    address: Union[str, Address] = ""
    company: str = ""
    tax_id: str = ""
    payment_terms: str = "Net 30"
    currency: str = "USD"
    notes: str = ""
    active: bool = True
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    MUTABLE_FIELDS: ClassVar[Dict[str, Callable[[Any], Any]]] = {
        "name": to_text,
        "email": to_text,
        "phone": to_text,
        "address": to_address,
        "company": to_text,
        "tax_id": to_text,
        "payment_terms": to_text,
        "currency": to_text,
        "notes": to_text,
    }

    @property
    def full_address(self) -> str:
        if not self.address:
            return ""
        if isinstance(self.address, Address):
            return ", ".join(self.address.parts())
        return self.address

    @property
    def contact_info(self) -> str:
        parts = []
        if self.email:
            parts.append(f"Email: {self.email}")
        if self.phone:
            parts.append(f"Phone: {self.phone}")
        return " | ".join(parts)

    @staticmethod
    def is_valid_email(email: str) -> bool:
        return EMAIL_RE.match(email) is not None

    @staticmethod
    def is_valid_phone(phone: str) -> bool:
        return PHONE_RE.match(PHONE_SEPARATORS_RE.sub("", phone)) is not None

    def validate(self) -> ValidationResult:
        errors: List[str] = []
        if not self.name or not self.name.strip():
            errors.append("Client name is required")
        if self.email and not self.is_valid_email(self.email):
            errors.append("Invalid email format")
        if self.phone and not self.is_valid_phone(self.phone):
            errors.append("Invalid phone number format")
        return ValidationResult.from_errors(errors)

    def activate(self) -> "Client":
        self.active = True
        self.touch()
        return self

    def deactivate(self) -> "Client":
        self.active = False
        self.touch()
        return self

    def summary(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "company": self.company,
            "email": self.email,
            "phone": self.phone,
            "currency": self.currency,
            "paymentTerms": self.payment_terms,
            "active": self.active,
            "createdAt": isoformat(self.created_at),
        }

    def to_dict(self) -> Dict[str, Any]:
        address = self.address.to_dict() if isinstance(self.address, Address) else self.address
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "address": address,
            "company": self.company,
            "taxId": self.tax_id,
            "paymentTerms": self.payment_terms,
            "currency": self.currency,
            "notes": self.notes,
            "createdAt": isoformat(self.created_at),
            "updatedAt": isoformat(self.updated_at),
            "active": self.active,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Client":
        client = cls(
            name=to_text(data.get("name")),
            email=to_text(data.get("email")),
            phone=to_text(data.get("phone")),
            address=to_address(data.get("address")),
            company=to_text(data.get("company")),
            tax_id=to_text(_pick(data, "tax_id", "taxId", "")),
            payment_terms=to_text(_pick(data, "payment_terms", "paymentTerms", "Net 30")),
            currency=to_text(data.get("currency", "USD")),
            notes=to_text(data.get("notes")),
            active=to_bool(data.get("active"), True),
        )
        _restore_identity(client, data)
        return client


class ProjectStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    ON_HOLD = "on-hold"
    CANCELLED = "cancelled"


PROJECT_STATUSES = frozenset(status.value for status in ProjectStatus)


def to_tags(value: Any) -> List[str]:
    if not isinstance(value, (list, tuple)):
        return []
    tags: List[str] = []
    for tag in value:
        if tag and tag not in tags:
            tags.append(tag)
    return tags


def _truncated_days(delta_seconds: float) -> int:
    return int(delta_seconds / 86400)


@dataclass
class Project(UpdatableMixin):
    name: str = ""
    description: str = ""
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    budget: Number = 0
    currency: str = "USD"
    status: str = ProjectStatus.ACTIVE.value
    client_id: str = ""
    manager: str = ""
    category: str = ""
    tags: List[str] = field(default_factory=list)
    notes: str = ""
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    MUTABLE_FIELDS: ClassVar[Dict[str, Callable[[Any], Any]]] = {
        "name": to_text,
        "description": to_text,
        "start_date": coerce_datetime,
        "end_date": coerce_datetime,
        "budget": to_number,
        "currency": to_text,
        "status": to_text,
        "client_id": to_text,
        "manager": to_text,
        "category": to_text,
        "tags": to_tags,
        "notes": to_text,
    }

    def __post_init__(self) -> None:
        self.start_date = coerce_datetime(self.start_date)
        self.end_date = coerce_datetime(self.end_date)
        self.tags = to_tags(self.tags)
        if isinstance(self.status, ProjectStatus):
            self.status = self.status.value

    @property
    def duration_days(self) -> int:
        if not self.start_date or not self.end_date:
            return 0
        return _truncated_days((self.end_date - self.start_date).total_seconds())

    @property
    def formatted_duration(self) -> str:
        duration = self.duration_days
        if duration == 0:
            return "N/A"
        if duration < 30:
            return f"{duration} days"
        if duration < 365:
            months, days = divmod(duration, 30)
            text = f"{months} month{'s' if months > 1 else ''}"
            return f"{text}, {days} days" if days > 0 else text
        years = duration // 365
        months = (duration % 365) // 30
        text = f"{years} year{'s' if years > 1 else ''}"
        return f"{text}, {months} months" if months > 0 else text

    @property
    def formatted_budget(self) -> str:
        return fmt_currency(self.budget, self.currency)

    def is_overdue(self, now: Optional[datetime] = None) -> bool:
        if not self.end_date or self.status in (ProjectStatus.COMPLETED.value, ProjectStatus.CANCELLED.value):
            return False
        return (coerce_datetime(now) or utc_now()) > self.end_date

    def days_until_deadline(self, now: Optional[datetime] = None) -> Optional[int]:
        if not self.end_date:
            return None
        current = coerce_datetime(now) or utc_now()
        return _truncated_days((self.end_date - current).total_seconds())

    def progress(self, now: Optional[datetime] = None) -> int:
        if not self.start_date or not self.end_date:
            return 0
        current = coerce_datetime(now) or utc_now()
        if current < self.start_date:
            return 0
        if current > self.end_date:
            return 100
        total = (self.end_date - self.start_date).total_seconds()
        if total <= 0:
            return 100
        elapsed = (current - self.start_date).total_seconds()
        return int(math.floor(elapsed / total * 100 + 0.5))

    def add_tag(self, tag: str) -> "Project":
        if tag and tag not in self.tags:
            self.tags.append(tag)
            self.touch()
        return self

    def remove_tag(self, tag: str) -> "Project":
        if tag in self.tags:
            self.tags.remove(tag)
            self.touch()
        return self

    def has_tag(self, tag: str) -> bool:
        return tag in self.tags

    def _set_status(self, status: ProjectStatus) -> "Project":
        self.status = status.value
        self.touch()
        return self

    def mark_completed(self) -> "Project":
        return self._set_status(ProjectStatus.COMPLETED)

    def mark_on_hold(self) -> "Project":
        return self._set_status(ProjectStatus.ON_HOLD)

    def cancel(self) -> "Project":
        return self._set_status(ProjectStatus.CANCELLED)

    def validate(self) -> ValidationResult:
        errors: List[str] = []
        if not self.name or not self.name.strip():
            errors.append("Project name is required")
        if self.start_date and self.end_date and self.start_date > self.end_date:
            errors.append("Start date cannot be after end date")
        if self.budget < 0:
            errors.append("Budget cannot be negative")
        if self.status not in PROJECT_STATUSES:
            errors.append("Invalid project status")
        return ValidationResult.from_errors(errors)

    def summary(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "status": self.status,
            "startDate": isoformat(self.start_date),
            "endDate": isoformat(self.end_date),
            "budget": self.budget,
            "currency": self.currency,
            "clientId": self.client_id,
            "manager": self.manager,
            "category": self.category,
            "tags": list(self.tags),
            "duration": self.formatted_duration,
            "progress": self.progress(now),
            "isOverdue": self.is_overdue(now),
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "startDate": isoformat(self.start_date),
            "endDate": isoformat(self.end_date),
            "budget": self.budget,
            "currency": self.currency,
            "status": self.status,
            "clientId": self.client_id,
            "manager": self.manager,
            "category": self.category,
            "tags": list(self.tags),
            "notes": self.notes,
            "createdAt": isoformat(self.created_at),
            "updatedAt": isoformat(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Project":
        project = cls(
            name=to_text(data.get("name")),
            description=to_text(data.get("description")),
            start_date=coerce_datetime(_pick(data, "start_date", "startDate")),
            end_date=coerce_datetime(_pick(data, "end_date", "endDate")),
            budget=to_number(data.get("budget") or 0),
            currency=to_text(data.get("currency", "USD")),
            status=to_text(data.get("status", ProjectStatus.ACTIVE.value)),
            client_id=to_text(_pick(data, "client_id", "clientId", "")),
            manager=to_text(data.get("manager")),
            category=to_text(data.get("category")),
            tags=to_tags(data.get("tags")),
            notes=to_text(data.get("notes")),
        )
        _restore_identity(project, data)
        return project


def _restore_identity(entity: Any, data: Mapping[str, Any]) -> None:
    if data.get("id"):
        entity.id = str(data["id"])
    created_at = coerce_datetime(_pick(data, "created_at", "createdAt"))
    if created_at is not None:
        entity.created_at = created_at
    updated_at = coerce_datetime(_pick(data, "updated_at", "updatedAt"))
    if updated_at is not None:
        entity.updated_at = updated_at
