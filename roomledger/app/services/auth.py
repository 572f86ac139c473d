"""Session token issuing and caller resolution."""
from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends, Header, HTTPException, Request
from jose import JWTError, jwt
from pydantic import BaseModel

from ..errors import UnauthenticatedError
from .ledger import get_ledger_config

logger = logging.getLogger(__name__)


class CurrentUser(BaseModel):
    id: str
    display_name: Optional[str] = None


def create_access_token(
    *,
    subject: str,
    display_name: Optional[str] = None,
    expires_delta: Optional[timedelta] = None,
) -> str:
    config = get_ledger_config()
    payload = {"sub": subject}
    if display_name:
        payload["name"] = display_name
    if expires_delta is None:
        expires_delta = timedelta(minutes=config.jwt_exp_minutes)
    payload["exp"] = datetime.now(timezone.utc) + expires_delta
    return jwt.encode(payload, config.jwt_secret_key, algorithm=config.jwt_algorithm)


def resolve_user_from_token(token: str) -> Optional[CurrentUser]:
    config = get_ledger_config()
    try:
        payload = jwt.decode(token, config.jwt_secret_key, algorithms=[config.jwt_algorithm])
    except JWTError:
        return None
    subject = str(payload.get("sub") or "").strip()
    if not subject or "/" in subject:
        return None
    return CurrentUser(id=subject, display_name=payload.get("name"))


def get_session_token(request: Request) -> Optional[str]:
    return request.cookies.get(get_ledger_config().session_cookie_name)


def _extract_token(session_token: Optional[str], authorization: Optional[str]) -> Optional[str]:
    if isinstance(authorization, str) and authorization:
        scheme, _, credentials = authorization.partition(" ")
        if scheme.lower() == "bearer" and credentials.strip():
            return credentials.strip()
    if isinstance(session_token, str) and session_token:
        return session_token
    return None


def get_current_user(
    session_token: Optional[str] = Depends(get_session_token),
    authorization: Optional[str] = Header(None),
) -> CurrentUser:
    token = _extract_token(session_token, authorization)
    user = resolve_user_from_token(token) if token else None
    if user is None:
        raise UnauthenticatedError("Not authenticated").to_http_exception()
    return user


def get_optional_current_user(
    session_token: Optional[str] = Depends(get_session_token),
    authorization: Optional[str] = Header(None),
) -> Optional[CurrentUser]:
    token = _extract_token(session_token, authorization)
    if not token:
        return None
    try:
        return resolve_user_from_token(token)
    except HTTPException:
        raise
    except Exception:
        logger.exception("Unexpected error while resolving optional session token")
        return None


__all__ = [
    "CurrentUser",
    "create_access_token",
    "get_current_user",
    "get_optional_current_user",
    "get_session_token",
    "resolve_user_from_token",
]
