"""Runtime settings read from environment variables.

Secrets (Stripe keys) are not read here; they come from SSM Parameter
Store via booking_engine.services.ssm_service.
"""

import os
from dataclasses import dataclass


def _int_env(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ValueError(f"Environment variable {name} must be an integer, got {raw!r}") from e


@dataclass(frozen=True)
class EngineSettings:
    """Tunable limits for the booking engine."""

    environment: str
    currency: str
    checkout_session_ttl_minutes: int
    availability_cache_seconds: int
    fallback_capacity: int
    webhook_max_attempts: int
    webhook_lease_seconds: int
    refund_lock_seconds: int
    stripe_timeout_seconds: int
    max_stay_nights: int

    @classmethod
    def from_env(cls) -> "EngineSettings":
        return cls(
            environment=os.environ.get("ENVIRONMENT", "dev"),
            currency=os.environ.get("BOOKING_CURRENCY", "eur").lower(),
            checkout_session_ttl_minutes=_int_env("CHECKOUT_SESSION_TTL_MINUTES", 30),
            availability_cache_seconds=_int_env("AVAILABILITY_CACHE_SECONDS", 300),
            fallback_capacity=_int_env("FALLBACK_CAPACITY", 10),
            webhook_max_attempts=_int_env("WEBHOOK_MAX_ATTEMPTS", 5),
            webhook_lease_seconds=_int_env("WEBHOOK_LEASE_SECONDS", 60),
            refund_lock_seconds=_int_env("REFUND_LOCK_SECONDS", 120),
            stripe_timeout_seconds=_int_env("STRIPE_TIMEOUT_SECONDS", 10),
            max_stay_nights=_int_env("MAX_STAY_NIGHTS", 60),
        )


def get_settings() -> EngineSettings:
    """Read settings from the current environment.

    Not cached, so tests can change environment variables between calls.
    """
    return EngineSettings.from_env()
