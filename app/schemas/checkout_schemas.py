# app/schemas/checkout_schemas.py
from typing import Literal

from sqlmodel import SQLModel


class CheckoutSessionRequest(SQLModel):
    provider: Literal["stripe", "paypal"] = "stripe"


class CheckoutConfirmRequest(SQLModel):
    provider: Literal["stripe", "paypal"]
    session_id: str          # stripe payment intent id / paypal order id
