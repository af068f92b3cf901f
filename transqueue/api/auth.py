"""
API key authentication.

Clients send ``Authorization: Bearer <key>`` or the bare key. With no
API_KEY configured (development only) every request is let through.
"""

from __future__ import annotations

import secrets

from fastapi import Depends, Header, HTTPException, Request

from transqueue.config import Settings


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def require_api_key(
    authorization: str | None = Header(default=None),
    settings: Settings = Depends(get_app_settings),
) -> None:
    """FastAPI dependency that rejects requests without the configured key."""
    if not settings.api_key:
        return

    if not authorization:
        raise HTTPException(status_code=401, detail="Authorization header is required")

    token = authorization.removeprefix("Bearer ").strip()
    if not secrets.compare_digest(token, settings.api_key):
        raise HTTPException(status_code=401, detail="Invalid API key")
