"""Shared enums for the short URL service.

This module defines all status and state enums used across the codebase.
Using enums instead of string literals provides type safety and prevents typos.
"""

from enum import StrEnum

__all__ = ["HealthStatus", "RequestStatus", "CacheStatus", "SchedulerState", "RateLimitOutcome"]


class HealthStatus(StrEnum):
    """Health check status values."""

    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"


class RequestStatus(StrEnum):
    """Request status values for metrics and logging."""

    SUCCESS = "success"
    VALIDATION_ERROR = "validation_error"
    ERROR = "error"
    NOT_FOUND = "not_found"
    EXPIRED = "expired"


class CacheStatus(StrEnum):
    """Cache status values for metrics."""

    HIT = "true"
    MISS = "false"


class SchedulerState(StrEnum):
    """Lifecycle of the click reconciliation scheduler."""

    IDLE = "idle"
    RUNNING = "running"
    STOPPED = "stopped"


class RateLimitOutcome(StrEnum):
    """Rate limiter decision labels for metrics."""

    ALLOWED = "allowed"
    REJECTED = "rejected"
    FAIL_OPEN = "fail_open"
