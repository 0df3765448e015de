"""
Payment ledger - signed payment records for one registration.

Payments are stored with a positive amount, refunds with a negative one.
Totals are computed over the materialized records held by the ledger,
never through a separate aggregate query.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone

from .money import Money

REFUND_STATUS = "refund"


@dataclass
class RegistrationPayment:
    """
    One payment or refund record.

    ``id`` is None until the record has been persisted.
    """

    amount_lowest_denomination: int
    currency_code: str
    receipt_id: str | None
    payment_status: str
    user_id: int | None
    created_at: datetime
    refunded_registration_payment_id: int | None = None
    id: int | None = None

    @property
    def is_persisted(self) -> bool:
        return self.id is not None

    @property
    def is_refund(self) -> bool:
        return self.amount_lowest_denomination < 0


@dataclass
class PaymentLedger:
    """Insert-only collection of payment records."""

    payments: list[RegistrationPayment] = field(default_factory=list)

    def paid(self, currency_code: str) -> Money:
        return Money(sum(p.amount_lowest_denomination for p in self.payments), currency_code)

    def last_payment_date(self) -> datetime | None:
        return max((p.created_at for p in self.payments), default=None)

    def statuses_most_recent_first(self) -> list[str]:
        ordered = sorted(self.payments, key=lambda p: p.created_at, reverse=True)
        return [p.payment_status for p in ordered]

    def has_payments(self) -> bool:
        return bool(self.payments)

    def append_payment(
        self,
        amount_lowest_denomination: int,
        currency_code: str,
        receipt_id: str | None,
        payment_status: str,
        user_id: int | None,
    ) -> RegistrationPayment:
        payment = RegistrationPayment(
            amount_lowest_denomination=amount_lowest_denomination,
            currency_code=currency_code,
            receipt_id=receipt_id,
            payment_status=payment_status,
            user_id=user_id,
            created_at=datetime.now(timezone.utc),
        )
        self.payments.append(payment)
        return payment

    def append_refund(
        self,
        amount_lowest_denomination: int,
        currency_code: str,
        receipt_id: str | None,
        refunded_registration_payment_id: int | None,
        user_id: int | None,
    ) -> RegistrationPayment:
        # Refunds are always negative regardless of the sign given
        refund = RegistrationPayment(
            amount_lowest_denomination=-abs(amount_lowest_denomination),
            currency_code=currency_code,
            receipt_id=receipt_id,
            payment_status=REFUND_STATUS,
            user_id=user_id,
            created_at=datetime.now(timezone.utc),
            refunded_registration_payment_id=refunded_registration_payment_id,
        )
        self.payments.append(refund)
        return refund

    def pending(self) -> list[RegistrationPayment]:
        """Records appended since the ledger was loaded."""
        return [p for p in self.payments if not p.is_persisted]
