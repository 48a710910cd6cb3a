"""Dependencies shared by the entitlement routers."""
from __future__ import annotations

import os
from typing import NoReturn, Optional

from fastapi import Cookie, HTTPException, status

from ... import app_context
from ..entitlements import Actor, EntitlementError

SESSION_COOKIE_NAME = os.getenv("SESSION_COOKIE_NAME", "session")


def get_current_actor(
    session_token: Optional[str] = Cookie(None, alias=SESSION_COOKIE_NAME),
) -> Actor:
    return app_context.get_current_actor(session_token=session_token)


def raise_http_error(exc: Exception) -> NoReturn:
    """Translate an engine failure into the matching HTTP error."""

    if isinstance(exc, EntitlementError):
        raise exc.to_http_exception() from exc
    if isinstance(exc, ValueError):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    raise exc
