"""
Reusable API dependencies, such as the log viewer auth check.
"""

import secrets
from typing import Optional

from fastapi import Header, HTTPException, status

from app.core.config import settings


async def verify_logs_secret(authorization: Optional[str] = Header(default=None)):
    """
    Require "Authorization: Bearer <LOGS_SECRET>".

    An unset secret locks the endpoint entirely.
    """
    secret = settings.LOGS_SECRET
    if not secret or not authorization:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    if not secrets.compare_digest(authorization.encode("utf-8"), f"Bearer {secret}".encode("utf-8")):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
