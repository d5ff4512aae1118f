"""Exception types raised by the billing orchestration layer."""

from __future__ import annotations

from typing import Optional, Sequence, Tuple


class BillingError(RuntimeError):
    """Base class for failures the HTTP layer reports as a 500."""


class StripeAPIError(BillingError):
    """A Stripe call answered with a non-2xx status or failed in transport.

    ``str(exc)`` reads ``"<operation> failed: <status> - <body>"`` so the raw
    provider response reaches the caller untouched.
    """

    def __init__(self, operation: str, status: Optional[int], body: str) -> None:
        self.operation = operation
        self.status = status
        self.body = body
        super().__init__(f"{operation} failed: {status if status is not None else 'no response'} - {body}")


class PreconditionError(BillingError):
    """An expanded Stripe object lacked something the flow cannot continue without."""


class ProvisioningError(BillingError):
    """A checkout-success step failed; earlier steps stay applied on Stripe."""

    def __init__(self, step: str, completed_steps: Sequence[str], cause: BaseException) -> None:
        self.step = step
        self.completed_steps: Tuple[str, ...] = tuple(completed_steps)
        self.cause = cause
        super().__init__(f"Step '{step}' failed: {cause}")
