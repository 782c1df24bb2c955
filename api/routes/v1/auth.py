"""
api/routes/v1/auth.py -- Registration, login and email-verification endpoints.

Routes:
  POST /api/v1/auth/register             -- create pending account, send link
  GET  /api/v1/auth/email-availability   -- is this email still free?
  POST /api/v1/auth/login                -- password login; returns bearer token
  GET  /api/v1/auth/verify-email         -- consume a verification link
  POST /api/v1/auth/resend-verification  -- reissue a verification link
  GET  /api/v1/auth/me                   -- claims of the presented bearer token

Security:
  [C1] Login failures share one response (401 bad_credentials) whatever the
       reason: unknown email, wrong password, unverified, inactive.
  [M5] Cache-Control: no-store on responses that carry or accept credentials.
  Resend always answers 200 with the same body so account existence and
  verification status never leak.

Handlers are plain `def`: the store and the password derivation block, and
FastAPI runs sync handlers in its thread pool.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import JSONResponse

from api.models import (
    UUID_PATTERN,
    EmailAvailabilityResponse,
    LoginRequest,
    LoginResponse,
    MeResponse,
    RegisterRequest,
    RegisterResponse,
    ResendRequest,
    ResendResponse,
    UserInfo,
    VerifyEmailResponse,
)
from auth.accounts import AccountService
from auth.dependencies import get_current_claims
from auth.errors import AuthenticationFailure
from auth.models import TokenClaims

# Auth policy:
# - every route except GET /auth/me is public -- they exist to obtain credentials
# - GET /auth/me: requires a valid bearer token (get_current_claims)
router = APIRouter()


def _service(request: Request) -> AccountService:
    return request.app.state.accounts


def _no_store(resp: JSONResponse) -> JSONResponse:
    resp.headers["Cache-Control"] = "no-store"  # [M5]
    return resp


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------


@router.post("/auth/register", response_model=RegisterResponse, status_code=201)
def register(request: Request, body: RegisterRequest) -> JSONResponse:
    """Create a pending account and dispatch its verification link.

    409 when the email is already registered. The raw verification token is
    never part of the response.
    """
    registration = _service(request).register(body.email, body.password)
    if not registration.ok:
        raise HTTPException(
            status_code=409,
            detail={"code": "email_exists", "message": "Email already exists."},
        )
    return _no_store(
        JSONResponse(
            status_code=201,
            content=RegisterResponse(account_id=registration.account.uuid).model_dump(),
        )
    )


@router.get("/auth/email-availability", response_model=EmailAvailabilityResponse)
def email_availability(request: Request, email: str = Query(min_length=3, max_length=255)) -> EmailAvailabilityResponse:
    return EmailAvailabilityResponse(available=_service(request).email_available(email))


# ---------------------------------------------------------------------------
# Login
# ---------------------------------------------------------------------------


@router.post("/auth/login", response_model=LoginResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password; return a one-hour bearer token.

    Uses AccountService.login(), which includes timing equalization [C1].
    Do NOT inline store lookup + verify here.
    """
    try:
        account, issued = _service(request).login(body.email, body.password)
    except AuthenticationFailure:
        return _no_store(
            JSONResponse(
                status_code=401,
                content={"error": {"code": "bad_credentials", "message": "Invalid email or password."}},
            )
        )
    return _no_store(
        JSONResponse(
            status_code=200,
            content=LoginResponse(
                token=issued.token,
                token_type=issued.token_type,
                expires_at=issued.expires_at.isoformat(),
                user=UserInfo(uuid=account.uuid, email=account.email),
            ).model_dump(),
        )
    )


# ---------------------------------------------------------------------------
# Verification
# ---------------------------------------------------------------------------


@router.get("/auth/verify-email", response_model=VerifyEmailResponse)
def verify_email(
    request: Request,
    uuid: str = Query(pattern=UUID_PATTERN),
    token: str = Query(min_length=1, max_length=128),
) -> JSONResponse:
    """Consume a verification link. Wrong, reused and expired tokens share one 400."""
    verification = _service(request).verify_email(uuid.lower(), token)
    if not verification.ok:
        raise HTTPException(
            status_code=400,
            detail={
                "code": "invalid_or_expired_token",
                "message": "Invalid or expired verification token. Please request a new verification email.",
            },
        )
    return _no_store(JSONResponse(content=VerifyEmailResponse().model_dump()))


@router.post("/auth/resend-verification", response_model=ResendResponse)
def resend_verification(request: Request, body: ResendRequest) -> JSONResponse:
    """Reissue a verification link. Always the same 200 body."""
    _service(request).resend_verification(body.email)
    return _no_store(JSONResponse(content=ResendResponse().model_dump()))


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/auth/me", response_model=MeResponse)
async def me(claims: TokenClaims = Depends(get_current_claims)) -> MeResponse:
    """Return the identity carried by the presented bearer token."""
    return MeResponse(uuid=claims.subject, email=claims.email, expires_at=claims.expires_at.isoformat())
