"""Passcode auth router — HTTP surface over the challenge manager and verifier.

Endpoints
---------
POST /auth/otp/request   → email a fresh one-time code
POST /auth/otp/verify    → check a code, optionally log the user in
GET  /auth/verify        → one-click verification from the emailed link
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from otp_auth.database.engine import get_session
from otp_auth.services.challenge_manager import ChallengeManager
from otp_auth.services.email_service import MailSender, SmtpMailSender
from otp_auth.services.passcodes import utcnow
from otp_auth.services.session_issuer import JwtSessionIssuer, SessionIssuer
from otp_auth.services.verifier import VerificationResult, Verifier

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


# ── Dependencies (overridable in tests) ──────────────────

def get_mail_sender() -> MailSender:
    return SmtpMailSender()


def get_session_issuer() -> SessionIssuer:
    return JwtSessionIssuer()


def get_clock() -> Callable[[], datetime]:
    return utcnow


SessionDep = Annotated[AsyncSession, Depends(get_session)]
ClockDep = Annotated[Callable[[], datetime], Depends(get_clock)]
IssuerDep = Annotated[SessionIssuer, Depends(get_session_issuer)]


# ── Request / response models ────────────────────────────

class OTPRequestBody(BaseModel):
    email: str


class OTPVerifyBody(BaseModel):
    email: str
    otp: str
    should_login: bool = False


class AcknowledgementResponse(BaseModel):
    success: bool
    message: str


class UserResponse(BaseModel):
    id: int
    email: str
    first_name: str
    last_name: str
    email_verified: bool
    roles: list[str]


class VerificationResponse(BaseModel):
    success: bool
    message: str
    user: UserResponse
    access_token: str | None = None
    refresh_token: str | None = None


def _to_response(result: VerificationResult) -> VerificationResponse:
    return VerificationResponse(**result.to_dict())


# ── Endpoints ────────────────────────────────────────────

@router.post("/otp/request", response_model=AcknowledgementResponse)
async def request_otp(
    body: OTPRequestBody,
    session: SessionDep,
    clock: ClockDep,
    mail_sender: Annotated[MailSender, Depends(get_mail_sender)],
):
    """Send a one-time code to *email*, creating the account if needed."""
    manager = ChallengeManager(session, mail_sender, clock=clock)
    ack = await manager.request_challenge(body.email)
    return AcknowledgementResponse(success=ack.success, message=ack.message)


@router.post("/otp/verify", response_model=VerificationResponse)
async def verify_otp(
    body: OTPVerifyBody,
    session: SessionDep,
    clock: ClockDep,
    issuer: IssuerDep,
):
    """Verify a one-time code; with ``should_login`` also return tokens."""
    verifier = Verifier(session, issuer, clock=clock)
    result = await verifier.verify(body.email, body.otp, body.should_login)
    return _to_response(result)


@router.get("/verify", response_model=VerificationResponse)
async def verify_link(
    session: SessionDep,
    clock: ClockDep,
    issuer: IssuerDep,
    email: str = Query(..., description="Address the code was sent to"),
    otp: str = Query(..., description="The emailed one-time code"),
):
    """Verify an email from the link embedded in the passcode email."""
    verifier = Verifier(session, issuer, clock=clock)
    result = await verifier.verify(email, otp, should_issue_session=False)
    return _to_response(result)
