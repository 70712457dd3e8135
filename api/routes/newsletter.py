"""
Newsletter signup route.
"""
from __future__ import annotations

from fastapi import APIRouter, Depends

from api.dependencies import get_newsletter_service
from application.dtos.newsletter import NewsletterSignup
from application.services.newsletter_service import NewsletterService


router = APIRouter(tags=["Newsletter"])


@router.post("/newsletter", summary="Subscribe to the newsletter")
async def subscribe(
    payload: NewsletterSignup,
    service: NewsletterService = Depends(get_newsletter_service),
):
    result = await service.subscribe(payload)
    return result.model_dump()
