"""
Request pipeline package for the token gateway.

Stages run strictly in order (origin policy, rate limit, body limit, optional
API key) ahead of route dispatch.
"""

from .origin_policy import OriginDecision, OriginPolicy
from .runner import SECURITY_HEADERS, RequestPipeline
from .stages import ApiKeyStage, BodyLimitStage, OriginStage, PipelineContext, RateLimitStage

__all__ = [
    "ApiKeyStage",
    "BodyLimitStage",
    "OriginDecision",
    "OriginPolicy",
    "OriginStage",
    "PipelineContext",
    "RateLimitStage",
    "RequestPipeline",
    "SECURITY_HEADERS",
]
