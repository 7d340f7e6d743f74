"""Parent account API: signup and the password-reset flow.

POST /api/auth/signup                 create a parent login + profile
POST /api/auth/forgot-password        email a one-hour reset link
GET  /api/auth/validate-reset-token   check a reset link before showing the form
POST /api/auth/reset-password         set the new password, burn the token

Passwords themselves are stored by Supabase Auth, never here.
"""
from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from supabase import Client

from thinkdrills.core.config import get_settings
from thinkdrills.core.deps import discard_auth_user, get_email_service, get_supabase_client, get_worksheet_store
from thinkdrills.core.errors import EmailDeliveryError
from thinkdrills.models.student import ForgotPasswordRequest, ResetPasswordRequest, SignupRequest
from thinkdrills.services.email_service import EmailService
from thinkdrills.services.worksheet_store import WorksheetStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])

RESET_REQUESTED_MESSAGE = "If an account exists with this email, you will receive a password reset link."


def _parse_ts(raw) -> Optional[datetime]:
    if not raw:
        return None
    ts = datetime.fromisoformat(str(raw).replace("Z", "+00:00"))
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


def _parent_for_token(store: WorksheetStore, token: Optional[str]) -> dict:
    if not token:
        raise HTTPException(status_code=400, detail="Token is required")
    parent = store.get_parent_by_reset_token(token)
    if not parent:
        raise HTTPException(status_code=400, detail="Invalid token")
    expiry = _parse_ts(parent.get("reset_token_expiry"))
    if expiry is None or expiry < datetime.now(timezone.utc):
        raise HTTPException(status_code=400, detail="Token has expired")
    return parent


@router.post("/signup", status_code=201)
async def signup(
    body: SignupRequest,
    store: WorksheetStore = Depends(get_worksheet_store),
    sb: Client = Depends(get_supabase_client),
):
    email = str(body.email)
    if store.get_parent_by_email(email):
        raise HTTPException(status_code=400, detail="Email already registered")

    try:
        created = sb.auth.admin.create_user({
            "email": email,
            "password": body.password,
            "email_confirm": True,
            "user_metadata": {"role": "parent", "name": body.name},
        })
    except Exception as e:
        logger.error("Signup failed for %s: %s", email, e, exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to create account")

    try:
        parent = store.create_parent(created.user.id, body.name, email)
    except Exception as e:
        logger.error("Parent profile insert failed for %s: %s", email, e, exc_info=True)
        discard_auth_user(sb, created.user.id)
        raise HTTPException(status_code=500, detail="Failed to create account")

    logger.info("Parent account created: %s", parent["id"])
    return {
        "message": "Account created successfully",
        "user": {"id": parent["id"], "name": parent["name"], "email": parent["email"]},
    }


@router.post("/forgot-password")
async def forgot_password(
    body: ForgotPasswordRequest,
    store: WorksheetStore = Depends(get_worksheet_store),
    email_service: EmailService = Depends(get_email_service),
):
    settings = get_settings()
    email = str(body.email)
    parent = store.get_parent_by_email(email)
    if not parent:
        # Same reply either way so addresses cannot be enumerated.
        return {"message": RESET_REQUESTED_MESSAGE}

    token = secrets.token_hex(32)
    expiry = datetime.now(timezone.utc) + timedelta(minutes=settings.reset_token_ttl_minutes)
    store.update_parent(parent["id"], {
        "reset_token": token,
        "reset_token_expiry": expiry.isoformat(),
    })

    reset_url = f"{settings.app_url}/parent/reset-password?token={token}"
    try:
        await email_service.send_password_reset(
            email, parent.get("name", ""), reset_url,
            expires_minutes=settings.reset_token_ttl_minutes,
        )
    except EmailDeliveryError:
        raise HTTPException(status_code=500, detail="Failed to process request")

    return {"message": RESET_REQUESTED_MESSAGE}


@router.get("/validate-reset-token")
async def validate_reset_token(
    token: Optional[str] = None,
    store: WorksheetStore = Depends(get_worksheet_store),
):
    _parent_for_token(store, token)
    return {"valid": True}


@router.post("/reset-password")
async def reset_password(
    body: ResetPasswordRequest,
    store: WorksheetStore = Depends(get_worksheet_store),
    sb: Client = Depends(get_supabase_client),
):
    parent = _parent_for_token(store, body.token)
    try:
        sb.auth.admin.update_user_by_id(parent["id"], {"password": body.password})
    except Exception as e:
        logger.error("Password reset failed for parent %s: %s", parent["id"], e)
        raise HTTPException(status_code=500, detail="Failed to reset password")

    store.update_parent(parent["id"], {"reset_token": None, "reset_token_expiry": None})
    return {"message": "Password has been reset successfully"}
