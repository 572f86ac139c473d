"""Feature gating utilities coordinating capability enforcement and rate limits."""
from .context import EntitlementContext
from .enforcement import require_capability, require_meter_capability
from .exceptions import FeatureGateError
from .rate_limit import CounterCache, InMemoryCounterCache, RateLimiter, RateLimitWindow, default_windows

__all__ = [
    "CounterCache",
    "EntitlementContext",
    "FeatureGateError",
    "InMemoryCounterCache",
    "RateLimitWindow",
    "RateLimiter",
    "default_windows",
    "require_capability",
    "require_meter_capability",
]
