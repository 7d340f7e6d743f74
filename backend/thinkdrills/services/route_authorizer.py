"""Route authorization: which role may open which page.

``authorize(path, principal)`` is a pure function. It never raises and
always returns one of four decisions; the middleware in
``thinkdrills.core.auth_middleware`` turns those into responses.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional
from urllib.parse import urlencode

from thinkdrills.core.deps import Principal

PUBLIC_PATHS = frozenset({
    "/student/login",
    "/parent/login",
    "/parent/signup",
    "/parent/forgot-password",
    "/error",
})

STUDENT_PREFIX = "/student/"
PARENT_PREFIX = "/parent/"
# Parents may review their children's worksheets.
STUDENT_WORKSHEET_PREFIX = "/student/worksheet/"

LOGIN_PATHS = {"student": "/student/login", "parent": "/parent/login"}
DASHBOARD_PATHS = {"student": "/student/dashboard", "parent": "/parent/dashboard"}


class RouteClassification(str, Enum):
    PUBLIC = "public"
    STUDENT_PROTECTED = "student_protected"
    PARENT_PROTECTED = "parent_protected"
    UNCLASSIFIED = "unclassified"


class DecisionKind(str, Enum):
    ALLOW = "allow"
    REDIRECT_LOGIN = "redirect_login"
    REDIRECT_DASHBOARD = "redirect_dashboard"
    REDIRECT_HOME = "redirect_home"


@dataclass(frozen=True)
class AuthDecision:
    kind: DecisionKind
    location: Optional[str] = None

    @property
    def allowed(self) -> bool:
        return self.kind is DecisionKind.ALLOW


ALLOW = AuthDecision(DecisionKind.ALLOW)
REDIRECT_HOME = AuthDecision(DecisionKind.REDIRECT_HOME, "/")


def classify_path(path: str) -> RouteClassification:
    if path in PUBLIC_PATHS:
        return RouteClassification.PUBLIC
    if path.startswith(STUDENT_PREFIX):
        return RouteClassification.STUDENT_PROTECTED
    if path.startswith(PARENT_PREFIX):
        return RouteClassification.PARENT_PROTECTED
    return RouteClassification.UNCLASSIFIED


def login_redirect(role: str, callback_path: str) -> AuthDecision:
    query = urlencode({"callbackUrl": callback_path}, safe="/")
    return AuthDecision(DecisionKind.REDIRECT_LOGIN, f"{LOGIN_PATHS[role]}?{query}")


def authorize(path: str, principal: Optional[Principal]) -> AuthDecision:
    classification = classify_path(path)

    if classification is RouteClassification.PUBLIC:
        if principal is not None and LOGIN_PATHS.get(principal.role) == path:
            return AuthDecision(DecisionKind.REDIRECT_DASHBOARD, DASHBOARD_PATHS[principal.role])
        return ALLOW

    if classification is RouteClassification.STUDENT_PROTECTED:
        if principal is None:
            return login_redirect("student", path)
        if principal.role != "student" and not path.startswith(STUDENT_WORKSHEET_PREFIX):
            return REDIRECT_HOME
        return ALLOW

    if classification is RouteClassification.PARENT_PROTECTED:
        if principal is None:
            return login_redirect("parent", path)
        if principal.role != "parent":
            return REDIRECT_HOME
        return ALLOW

    return ALLOW
