"""Request budgets shared across service instances."""

from .limiter import RateLimitBucket, RateLimitDecision, RateLimiter, get_rate_limiter  # noqa: F401
