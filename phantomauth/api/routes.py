"""
API routes for PhantomAuth.

The request context is always derived from the incoming request itself;
clients never send a context for their own request.
"""

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, Field

from .server import get_flow
from ..context import GeoLocation, PhantomContext
from ..service import AuthFlow

logger = logging.getLogger(__name__)

router = APIRouter()


# ============ Request/Response Models ============

class GeoLocationModel(BaseModel):
    """Geolocation hints."""
    country: Optional[str] = None
    city: Optional[str] = None
    lat: Optional[float] = None
    long: Optional[float] = None


class ContextModel(BaseModel):
    """A derived request context."""
    ip_hash: str
    user_agent_hash: str
    fingerprint: Optional[str] = None
    geo_location: Optional[GeoLocationModel] = None
    timestamp: float = 0.0

    def to_context(self) -> PhantomContext:
        geo = None
        if self.geo_location is not None:
            geo = GeoLocation(**self.geo_location.model_dump())
        return PhantomContext(
            ip_hash=self.ip_hash,
            user_agent_hash=self.user_agent_hash,
            fingerprint=self.fingerprint,
            geo_location=geo,
            timestamp=self.timestamp,
        )


class MatchRequest(BaseModel):
    """Compare two contexts."""
    expected: ContextModel
    actual: ContextModel


class MatchResponse(BaseModel):
    match: bool


class LoginRequest(BaseModel):
    """Request a login link."""
    email: str = Field(..., description="Where to send the link")


class LoginResponse(BaseModel):
    status: str = "sent"
    expires_in: int


class RedeemRequest(BaseModel):
    """Redeem a login link."""
    link: str = Field(..., description="The phantom link from the email")
    remember_device: bool = Field(default=False, description="Issue a device token")


class RedeemResponse(BaseModel):
    email: str
    session_token: str
    device_token: Optional[str] = None


class DeviceTokenRequest(BaseModel):
    """Present a device token."""
    device_token: str


class DeviceIdentityResponse(BaseModel):
    user_id: str
    device_id: str
    session_token: str


class SessionRequest(BaseModel):
    """Present a session token."""
    session_token: str


class SessionResponse(BaseModel):
    user_id: str
    email: Optional[str] = None
    device_id: Optional[str] = None


class RevokeRequest(BaseModel):
    """Revoke the presented device, or every device of its user."""
    device_token: str
    all_devices: bool = False


class RevokeResponse(BaseModel):
    revoked: int


# ============ Helpers ============

def require_flow() -> AuthFlow:
    flow = get_flow()
    if not flow:
        raise HTTPException(status_code=503, detail="Server not ready")
    return flow


def request_context(flow: AuthFlow, request: Request) -> PhantomContext:
    client_ip = request.client.host if request.client else None
    return flow.context_from_headers(request.headers, client_ip)


# ============ Routes ============

@router.get("/health")
async def health():
    return {"status": "ok"}


@router.get("/auth/context", response_model=ContextModel)
async def derive_request_context(request: Request):
    """Show the context derived for this request."""
    flow = require_flow()
    return request_context(flow, request).to_dict()


@router.post("/auth/context/match", response_model=MatchResponse)
async def match_contexts(body: MatchRequest):
    """Compare two contexts under the tolerant matching policy."""
    flow = require_flow()
    return MatchResponse(match=flow.match_context(body.expected.to_context(), body.actual.to_context()))


@router.post("/auth/login", response_model=LoginResponse, status_code=202)
async def login(body: LoginRequest, request: Request):
    """Send a login link bound to this request's context."""
    flow = require_flow()
    context = request_context(flow, request)
    await flow.enforce_rate_limit("login", context.ip_hash)
    await flow.send_login_link(body.email, context)
    return LoginResponse(expires_in=flow.config.link_expiry_seconds)


@router.post("/auth/redeem", response_model=RedeemResponse)
async def redeem(body: RedeemRequest, request: Request):
    """Redeem a login link, optionally remembering this device."""
    flow = require_flow()
    context = request_context(flow, request)
    await flow.enforce_rate_limit("verify", context.ip_hash)

    redemption = await flow.redeem_phantom_link(body.link, context)

    device_token = None
    if body.remember_device and context.fingerprint:
        device_token = await flow.issue_device_token(redemption.email, context)

    session_token = flow.issue_session(redemption.email, email=redemption.email)
    return RedeemResponse(
        email=redemption.email,
        session_token=session_token,
        device_token=device_token,
    )


@router.post("/auth/device/validate", response_model=DeviceIdentityResponse)
async def validate_device(body: DeviceTokenRequest, request: Request):
    """Silent re-login with a device token."""
    flow = require_flow()
    context = request_context(flow, request)
    await flow.enforce_rate_limit("verify", context.ip_hash)
    identity = await flow.validate_device_token(body.device_token, context)
    session_token = flow.issue_session(identity.user_id, device_id=identity.device_id)
    return DeviceIdentityResponse(**identity.to_dict(), session_token=session_token)


@router.post("/auth/session", response_model=SessionResponse)
async def validate_session(body: SessionRequest):
    """Check a session token and say who it belongs to."""
    flow = require_flow()
    return SessionResponse(**flow.validate_session(body.session_token).to_dict())


@router.post("/auth/device/revoke", response_model=RevokeResponse)
async def revoke_device(body: RevokeRequest, request: Request):
    """Revoke devices. The caller proves ownership with a valid device token."""
    flow = require_flow()
    context = request_context(flow, request)
    identity = await flow.validate_device_token(body.device_token, context)

    if body.all_devices:
        revoked = await flow.revoke_all_device_tokens(identity.user_id)
    else:
        revoked = int(await flow.revoke_device_token(identity.user_id, identity.device_id))

    return RevokeResponse(revoked=revoked)
