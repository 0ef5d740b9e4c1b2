from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Dict, List, Literal, Mapping, Optional

from pydantic import BaseModel, Field

from app.schemas.cart_schemas import CartItem, CouponInfo

ProviderKind = Literal["stripe", "paypal", "free"]


class ReceiptStatus(str, Enum):
    succeeded = "succeeded"
    requires_action = "requires_action"
    cancelled = "cancelled"
    declined = "declined"


class PaymentSession(BaseModel):
    provider: ProviderKind
    session_id: str
    amount: float
    currency: str
    client_secret: Optional[str] = None   # stripe
    approval_url: Optional[str] = None    # paypal


class ConfirmationReceipt(BaseModel):
    """Provider-neutral outcome of a payment attempt."""

    provider: ProviderKind
    session_id: str
    status: ReceiptStatus
    transaction_id: Optional[str] = None
    amount: Optional[float] = None
    currency: Optional[str] = None
    payer_id: Optional[str] = None
    raw: Dict[str, Any] = Field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.status == ReceiptStatus.succeeded


class PaymentError(Exception):
    """Base class for provider failures."""

    def __init__(self, message: str, *, session_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.session_id = session_id


class PaymentProviderError(PaymentError):
    """Network or provider outage. Safe to retry."""


class PaymentCancelled(PaymentError):
    """The payer backed out. Not an error for the customer."""


class PaymentDeclined(PaymentError):
    """The provider refused the payment. Terminal."""


def to_minor_units(amount: float) -> int:
    return int(round(amount * 100))


def from_minor_units(amount: int) -> float:
    return round(amount / 100, 2)


class PaymentAdapter(ABC):
    provider: ProviderKind

    @abstractmethod
    def create_payment_session(
        self,
        amount: float,
        items: List[CartItem],
        coupon: Optional[CouponInfo] = None,
        metadata: Optional[Dict[str, str]] = None,
    ) -> PaymentSession:
        ...

    @abstractmethod
    def confirm(self, session_id: str) -> ConfirmationReceipt:
        ...

    @abstractmethod
    def parse_webhook(
        self,
        payload: bytes,
        headers: Mapping[str, str],
    ) -> Optional[ConfirmationReceipt]:
        """Verify a provider notification and turn it into a receipt.

        Returns ``None`` for event types that carry no payment outcome.
        """
