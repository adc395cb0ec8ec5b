"""Exception types raised by the payment request engine and its collaborators."""

from __future__ import annotations


class PaymentRequestError(Exception):
    """Base class for payment request failures."""


class BuildError(PaymentRequestError, ValueError):
    """Raised when builder inputs cannot produce a priced request."""


class RenderError(PaymentRequestError):
    """Raised when a payment request cannot be rendered or written to disk."""


class RenderTimeout(RenderError):
    """Raised when a render job exceeds its time budget."""


class DependencyError(RuntimeError):
    """Raised when a required runtime dependency is missing."""
