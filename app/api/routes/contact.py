from typing import Optional

import httpx
from fastapi import APIRouter, Depends, Header, HTTPException

from app.core.logging import get_logger
from app.models.request import ContactRequest
from app.models.response import ContactResponse
from app.services.contact import ContactService, get_contact_service

logger = get_logger(__name__)

router = APIRouter(tags=["Contact"])


@router.post("/contact", response_model=ContactResponse)
async def contact(
    request: ContactRequest,
    user_agent: Optional[str] = Header(default=None),
    service: ContactService = Depends(get_contact_service)
):
    """Forward a contact form message by email."""
    try:
        await service.send(request.message, user_agent=user_agent)
    except httpx.HTTPError as e:
        logger.error(f"Contact error: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")
    return ContactResponse(success=True)
