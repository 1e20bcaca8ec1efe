"""API-key guard for the admin endpoints.

When API_KEY is not set, the guard is disabled (local dev mode).
"""
import hmac
from typing import Optional

from fastapi import Header, HTTPException, status

from racedata.core import config


def require_api_key(x_api_key: Optional[str] = Header(None)) -> None:
    expected = config.API_KEY
    if not expected:
        return
    if not x_api_key or not hmac.compare_digest(x_api_key, expected):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing API key."
        )
