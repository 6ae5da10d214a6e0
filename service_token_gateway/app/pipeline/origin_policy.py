"""
Origin policy for cross-origin callers.
"""

from enum import Enum
from typing import Iterable, Optional

from shared.logging import get_logger


class OriginDecision(str, Enum):
    ALLOW = "allow"
    ALLOW_DEVELOPMENT = "allow_development"
    DENY = "deny"

    @property
    def allowed(self) -> bool:
        return self is not OriginDecision.DENY


class OriginPolicy:
    """Decides whether a declared request origin is permitted."""

    def __init__(self, allowed_origins: Iterable[str], permissive: bool = False):
        self.allowed_origins = frozenset(allowed_origins)
        self.permissive = permissive
        self.logger = get_logger("gateway.origin_policy")

    def evaluate(self, origin: Optional[str]) -> OriginDecision:
        # Non-browser clients (mobile apps, curl) send no Origin
        if not origin:
            return OriginDecision.ALLOW

        if origin in self.allowed_origins:
            return OriginDecision.ALLOW

        if self.permissive:
            self.logger.warning("CORS: Allowing origin in development mode", origin=origin)
            return OriginDecision.ALLOW_DEVELOPMENT

        self.logger.warning("CORS: Blocked origin", origin=origin)
        return OriginDecision.DENY
