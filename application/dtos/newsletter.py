"""
Newsletter signup DTOs.
"""
from __future__ import annotations

from pydantic import BaseModel, ConfigDict, EmailStr, Field


class NewsletterSignup(BaseModel):
    """Signup form; field names follow the site form."""

    model_config = ConfigDict(str_strip_whitespace=True)

    nombre: str = Field(min_length=1, max_length=100)
    apellido: str = Field(min_length=1, max_length=100)
    telefono: str = Field(min_length=1, max_length=50)
    instagram: str = Field(min_length=1, max_length=100)
    email: EmailStr


class SubscriptionReceipt(BaseModel):
    id: str
    email: str


class NewsletterResult(BaseModel):
    success: bool = True
    message: str = "Suscripción exitosa"
    data: SubscriptionReceipt
