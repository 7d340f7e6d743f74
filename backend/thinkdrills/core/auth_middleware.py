import logging
from typing import Callable, Optional

from fastapi import Request
from fastapi.responses import RedirectResponse
from starlette.middleware.base import BaseHTTPMiddleware

from thinkdrills.core.deps import Principal, bearer_token, get_supabase_client, resolve_principal
from thinkdrills.services.route_authorizer import RouteClassification, authorize, classify_path

logger = logging.getLogger("thinkdrills.auth_middleware")

ACCESS_TOKEN_COOKIE = "access_token"

PrincipalResolver = Callable[[Request], Optional[Principal]]


def principal_from_request(request: Request) -> Optional[Principal]:
    token = bearer_token(request.headers.get("authorization")) or request.cookies.get(ACCESS_TOKEN_COOKIE)
    if not token:
        return None
    return resolve_principal(token, get_supabase_client())


class RouteAuthorizationMiddleware(BaseHTTPMiddleware):
    """Gate page requests by role before any handler runs."""

    def __init__(self, app, resolver: PrincipalResolver = principal_from_request):
        super().__init__(app)
        self._resolver = resolver

    async def dispatch(self, request: Request, call_next):
        path = request.url.path
        if classify_path(path) is RouteClassification.UNCLASSIFIED:
            return await call_next(request)

        principal = self._resolver(request)
        decision = authorize(path, principal)
        if decision.allowed:
            return await call_next(request)

        logger.info(
            "[auth] %s -> %s (%s, role=%s)",
            path, decision.location, decision.kind.value,
            principal.role if principal else None,
        )
        return RedirectResponse(url=decision.location, status_code=307)
