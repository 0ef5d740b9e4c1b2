from typing import Dict

from fastapi import Depends
from sqlmodel import Session

from app.database import get_session
from app.services.cart_storage import CartStorage, DatabaseCartStorage
from app.services.payments.base import PaymentAdapter
from app.services.payments.paypal_adapter import PayPalAdapter
from app.services.payments.stripe_adapter import StripeAdapter
from app.services.storage import ObjectStorage, get_storage


def get_cart_storage(session: Session = Depends(get_session)) -> CartStorage:
    return DatabaseCartStorage(session)


def get_payment_adapters() -> Dict[str, PaymentAdapter]:
    return {
        "stripe": StripeAdapter(),
        "paypal": PayPalAdapter(),
    }


def get_object_storage() -> ObjectStorage:
    return get_storage()
