"""Authentication helpers and FastAPI security dependencies.

This module provides utilities to decode JWT tokens and the FastAPI
dependencies `get_current_member` / `get_current_member_id` that
validate the bearer token and resolve the authenticated member.

Token verification raises `UnauthorizedError` on failure so it can be
used directly inside route dependencies; the registered error handler
turns it into a 401 response.
"""

import uuid
from typing import Optional

import jwt
from fastapi import Depends, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlmodel import Session

from . import models, repositories
from .config import settings
from .database import get_session
from .errors import UnauthorizedError

bearer_scheme = HTTPBearer(auto_error=False)


def decode_token(token: str) -> dict:
    """Decode and verify a JWT token.

    Returns the decoded payload on success or raises `UnauthorizedError`
    on failure.
    """
    try:
        return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise UnauthorizedError('token expired')
    except jwt.InvalidTokenError:
        raise UnauthorizedError('invalid token')


def get_current_member(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(bearer_scheme),
    db: Session = Depends(get_session),
) -> models.Member:
    """FastAPI dependency that returns the authenticated member.

    The function extracts the bearer token from the request, decodes it
    and loads the `Member` it names. Any authentication issue (missing
    header, bad or expired token, deleted member) is a 401.
    """
    if credentials is None:
        raise UnauthorizedError('missing bearer token')
    payload = decode_token(credentials.credentials)
    try:
        member_id = uuid.UUID(str(payload.get('sub')))
    except ValueError:
        raise UnauthorizedError('invalid token payload')
    member = repositories.MemberRepository(db).get(member_id)
    if not member:
        raise UnauthorizedError('member not found')
    return member


def get_current_member_id(member: models.Member = Depends(get_current_member)) -> uuid.UUID:
    """Shortcut dependency yielding only the authenticated member id."""
    return member.id
