"""Weighted sliding-window rate limiting with per-tenant policies in Redis."""

from .decision import Decision, DecisionReason
from .identity import resolve_identity
from .policy import PolicyStore, TenantPolicy, default_policy
from .service import AdmissionController, RateLimiterService
from .sliding_window import sliding_window_decide, window_bounds

__all__ = [
    "AdmissionController",
    "Decision",
    "DecisionReason",
    "PolicyStore",
    "RateLimiterService",
    "TenantPolicy",
    "default_policy",
    "resolve_identity",
    "sliding_window_decide",
    "window_bounds",
]
