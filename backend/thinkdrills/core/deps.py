import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from fastapi import Depends, Header, HTTPException
from supabase import create_client, Client

from thinkdrills.core.config import get_settings

logger = logging.getLogger("thinkdrills.auth")

ROLES = ("student", "parent")


@dataclass(frozen=True)
class Principal:
    id: str
    role: str
    email: str = ""


@lru_cache
def get_supabase_client() -> Client:
    settings = get_settings()
    return create_client(settings.supabase_url, settings.supabase_service_key)


def bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization or not authorization.startswith("Bearer "):
        return None
    return authorization[len("Bearer "):].strip() or None


def resolve_principal(token: Optional[str], sb: Client) -> Optional[Principal]:
    """Look the token up with Supabase Auth. None means unauthenticated."""
    if not token:
        return None
    try:
        user_response = sb.auth.get_user(token)
    except Exception as e:
        logger.info("Token rejected by identity provider: %s", e)
        return None
    user = getattr(user_response, "user", None)
    if user is None:
        return None
    role = (getattr(user, "user_metadata", None) or {}).get("role")
    if role not in ROLES:
        logger.warning("User %s has no valid role in metadata", user.id)
        return None
    return Principal(id=str(user.id), role=role, email=getattr(user, "email", "") or "")


def get_current_principal(
    authorization: str = Header(None),
    sb: Client = Depends(get_supabase_client),
) -> Principal:
    token = bearer_token(authorization)
    if token is None:
        raise HTTPException(status_code=401, detail="Missing or invalid authorization header")
    principal = resolve_principal(token, sb)
    if principal is None:
        raise HTTPException(status_code=401, detail="Invalid token")
    return principal


def require_role(role: str):
    def _dep(principal: Principal = Depends(get_current_principal)) -> Principal:
        if principal.role != role:
            raise HTTPException(status_code=403, detail=f"Only {role} accounts can do this")
        return principal
    return _dep


# ── Generation pipeline singletons ───────────────────────────────────────────
# One limiter per process so every request shares the provider quota.

@lru_cache
def get_rate_limiter():
    from thinkdrills.services.rate_limiter import RateLimiter
    return RateLimiter.from_settings(get_settings())


def get_question_generator():
    from thinkdrills.services.question_generator import QuestionGenerator
    return QuestionGenerator.from_settings(get_rate_limiter(), get_settings())


def get_email_service():
    from thinkdrills.services.email_service import EmailService
    settings = get_settings()
    return EmailService(api_key=settings.resend_api_key, from_email=settings.resend_from_email)


def get_worksheet_store(sb: Client = Depends(get_supabase_client)):
    from thinkdrills.services.worksheet_store import WorksheetStore
    return WorksheetStore(sb)


def discard_auth_user(sb: Client, user_id: str) -> None:
    """Remove a login whose profile row could not be written."""
    try:
        sb.auth.admin.delete_user(user_id)
    except Exception as e:
        logger.error("Failed to remove orphaned auth user %s: %s", user_id, e)
