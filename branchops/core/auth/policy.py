from __future__ import annotations

import re
from dataclasses import dataclass
from typing import FrozenSet, Optional

from branchops.core.auth.roles import ALL_ROLES

ANY_ROLE: FrozenSet[str] = ALL_ROLES
ADMIN = frozenset({"admin"})
MANAGEMENT = frozenset({"admin", "operations_lead"})
KITCHEN_WRITERS = frozenset({"admin", "operations_lead", "central_kitchen"})
DISPATCH_WRITERS = frozenset({"admin", "operations_lead", "dispatcher"})
USER_ADMINS = frozenset({"admin", "dispatcher"})

WRITE_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})
ANY_METHOD = frozenset({"*"})


@dataclass(frozen=True)
class PolicyRule:
    methods: FrozenSet[str]  # {"GET"}, WRITE_METHODS, {"*"}
    pattern: re.Pattern
    allowed_roles: FrozenSet[str]

    def applies(self, method: str, path: str) -> bool:
        if "*" not in self.methods and method not in self.methods:
            return False
        return bool(self.pattern.match(path))


# Paths served without a principal (cron endpoints check CRON_SECRET themselves)
PUBLIC_PATHS = [
    re.compile(r"^/api/v1/health/(live|ready)$"),
    re.compile(r"^/api/v1/auth/(login|signup)$"),
    re.compile(r"^/api/v1/cron/"),
]


# Ordered: first match wins
RULES: list[PolicyRule] = [
    # self-service account endpoints
    PolicyRule(ANY_METHOD, re.compile(r"^/api/v1/users/me(/|$)"), ANY_ROLE),
    PolicyRule(ANY_METHOD, re.compile(r"^/api/v1/users(/|$)"), USER_ADMINS),

    PolicyRule(WRITE_METHODS, re.compile(r"^/api/v1/branches(/|$)"), ADMIN),
    PolicyRule(WRITE_METHODS, re.compile(r"^/api/v1/roles(/|$)"), ADMIN),

    PolicyRule(WRITE_METHODS, re.compile(r"^/api/v1/recipes(/|$)"), KITCHEN_WRITERS),
    PolicyRule(WRITE_METHODS, re.compile(r"^/api/v1/recipe-instructions(/|$)"), KITCHEN_WRITERS),
    PolicyRule(WRITE_METHODS, re.compile(r"^/api/v1/production-schedules(/|$)"), KITCHEN_WRITERS),

    PolicyRule(frozenset({"POST"}), re.compile(r"^/api/v1/dispatch(/upload|/parse)?$"), DISPATCH_WRITERS),
    PolicyRule(frozenset({"DELETE"}), re.compile(r"^/api/v1/dispatch/[^/]+$"), DISPATCH_WRITERS),

    PolicyRule(frozenset({"POST"}), re.compile(r"^/api/v1/notifications(/compose-ai)?$"), MANAGEMENT),
    PolicyRule(frozenset({"DELETE"}), re.compile(r"^/api/v1/notifications/\d+$"), MANAGEMENT),

    PolicyRule(ANY_METHOD, re.compile(r"^/api/v1/quality-checks/(import|analyze)$"), MANAGEMENT),
    PolicyRule(ANY_METHOD, re.compile(r"^/api/v1/analytics/"), MANAGEMENT),

    # default for the API surface: any authenticated role
    PolicyRule(ANY_METHOD, re.compile(r"^/api/v1/"), ANY_ROLE),
]


def is_public_path(path: str) -> bool:
    return any(p.match(path) for p in PUBLIC_PATHS)


def allowed_roles_for(method: str, path: str) -> Optional[FrozenSet[str]]:
    """
    Returns the roles allowed for this request, or None if policy does not apply.
    """
    m = (method or "GET").upper()
    for rule in RULES:
        if rule.applies(m, path):
            return rule.allowed_roles
    return None
