"""
Payment DTOs (Pydantic v2) used at application boundaries.
"""
from __future__ import annotations

from typing import Any, Optional
from pydantic import AliasChoices, BaseModel, ConfigDict, EmailStr, Field, field_validator


class BookingRequest(BaseModel):
    """Deposit booking submitted by the website form.

    The legacy Spanish field names of the site form are accepted as aliases.
    """

    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    customer_name: str = Field(
        min_length=1, max_length=200,
        validation_alias=AliasChoices("customerName", "nombre", "customer_name"),
    )
    email: EmailStr
    phone: str = Field(
        min_length=1, max_length=50,
        validation_alias=AliasChoices("phone", "celular"),
    )
    gender: str = Field(
        min_length=1, max_length=50,
        validation_alias=AliasChoices("gender", "genero"),
    )
    comments: str = Field(
        min_length=1, max_length=2000,
        validation_alias=AliasChoices("comments", "comentarios"),
    )
    deposit_label: str = Field(
        min_length=1, max_length=200,
        validation_alias=AliasChoices("depositLabel", "abono", "deposit_label"),
    )
    price: int

    @field_validator("price", mode="before")
    @classmethod
    def _parse_price(cls, v: Any) -> Any:
        # The form sends the price as a string of digits
        if isinstance(v, bool):
            raise ValueError("price must be a positive integer")
        if isinstance(v, str):
            s = v.strip()
            if not s.isdigit():
                raise ValueError("price must be a positive integer")
            return int(s)
        if isinstance(v, float):
            if not v.is_integer():
                raise ValueError("price must be a positive integer")
            return int(v)
        return v

    @field_validator("price")
    @classmethod
    def _positive_price(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("price must be a positive integer")
        return v


class BookingResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    redirect_url: str = Field(serialization_alias="redirectUrl")
    order_id: str = Field(serialization_alias="orderId")


class CreatePayment(BaseModel):
    """Parameters for the gateway's payment creation call."""

    order_id: str
    subject: str
    amount: int = Field(gt=0)
    email: str
    optional: Optional[dict[str, Any]] = None


class PaymentCreated(BaseModel):
    redirect_url: str
    token: str
    flow_order: Optional[int] = None


class PaymentStatus(BaseModel):
    """Authoritative payment state as reported by the gateway."""

    token: str
    status_code: int
    commerce_order: Optional[str] = None
    flow_order: Optional[int] = None
    amount: Optional[int] = None
    payer_email: Optional[str] = None
    raw_payload: dict[str, Any] = Field(default_factory=dict)


class OrderStatusView(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    order_id: str = Field(serialization_alias="orderId")
    status: str
    amount: int
    notified: bool
