"""
Bearer-token authentication for the API.

Tokens are opaque strings stored on the user document (`api_token`). Setting
AUTH_REQUIRED=false resolves every request to a fixed development user.
"""
import logging
import os
from typing import Optional

from fastapi import Header, HTTPException

import database

logger = logging.getLogger(__name__)

DEV_USER_ID = "507f1f77bcf86cd799439011"


def auth_required() -> bool:
    return os.getenv("AUTH_REQUIRED", "true").lower() != "false"


def extract_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    if authorization.startswith("Bearer "):
        authorization = authorization[7:]
    return authorization.strip() or None


def get_current_user_id(
    authorization: Optional[str] = Header(None),
    x_access_token: Optional[str] = Header(None),
) -> str:
    """FastAPI dependency returning the authenticated user's id as a string."""
    if not auth_required():
        logger.warning("Authentication disabled, using development user (do not use in production)")
        return DEV_USER_ID

    token = extract_token(authorization) or extract_token(x_access_token)
    if token is None:
        raise HTTPException(status_code=401, detail="No token provided")
    if database.db is None:
        raise HTTPException(status_code=500, detail="Database not available")

    user = database.db["user"].find_one({"api_token": token}, {"_id": 1})
    if not user:
        logger.warning("Rejected invalid token")
        raise HTTPException(status_code=401, detail="Invalid or expired token")
    return str(user["_id"])
