"""
auth/dependencies.py -- FastAPI Depends() helpers for bearer authentication.

Tokens arrive as "Authorization: Bearer <token>". They are validated against
app.state.token_issuer; nothing is looked up in the store, the token is
stateless.

try_get_current_claims() is the soft variant (returns None on failure).
get_current_claims() wraps it and raises HTTP 401 if unauthenticated.
TokenInvalid and TokenExpired both end as 401 -- clients never retry them.

Layer rule: no imports from api/.
  auth/dependencies.py may import from fastapi (for HTTPException/Request)
  because this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

import logging

from fastapi import HTTPException, Request

from auth.errors import TokenExpired, TokenInvalid
from auth.models import TokenClaims
from auth.tokens import TokenIssuer

logger = logging.getLogger("agbilling.auth.dependencies")


def _bearer_token(request: Request) -> str | None:
    auth_header = request.headers.get("Authorization", "")
    scheme, _, token = auth_header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def try_get_current_claims(request: Request) -> TokenClaims | None:
    """Return validated claims for the request's bearer token, or None. Never raises."""
    token = _bearer_token(request)
    if token is None:
        return None
    issuer: TokenIssuer = request.app.state.token_issuer
    try:
        return issuer.validate(token)
    except TokenExpired:
        logger.info("Rejected expired bearer token")
        return None
    except TokenInvalid:
        logger.info("Rejected invalid bearer token")
        return None


def get_current_claims(request: Request) -> TokenClaims:
    """Require a valid bearer token. Raises HTTP 401 otherwise.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(claims: TokenClaims = Depends(get_current_claims)): ...
    """
    claims = try_get_current_claims(request)
    if claims is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
            headers={"WWW-Authenticate": "Bearer"},
        )
    return claims
