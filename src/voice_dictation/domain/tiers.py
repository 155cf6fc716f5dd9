from dataclasses import dataclass
from enum import Enum

WARNING_THRESHOLD_SECONDS = 30
DANGER_THRESHOLD_SECONDS = 10


class SubscriptionTier(str, Enum):
    FREE = "free"
    STARTER = "starter"
    PROFESSIONAL = "professional"
    PREMIUM = "premium"


@dataclass(frozen=True)
class TierLimits:
    max_duration_seconds: int
    daily_limit: int
    max_concurrent_streams: int
    has_access: bool
    trial_limit: int = 0


# Reference values only. The service reports the authoritative ceiling when it
# accepts a session.
TIER_LIMITS: dict[SubscriptionTier, TierLimits] = {
    SubscriptionTier.FREE: TierLimits(
        max_duration_seconds=60, daily_limit=0, max_concurrent_streams=3, has_access=True, trial_limit=3,
    ),
    SubscriptionTier.STARTER: TierLimits(
        max_duration_seconds=0, daily_limit=0, max_concurrent_streams=0, has_access=False,
    ),
    SubscriptionTier.PROFESSIONAL: TierLimits(
        max_duration_seconds=180, daily_limit=100, max_concurrent_streams=10, has_access=True,
    ),
    SubscriptionTier.PREMIUM: TierLimits(
        max_duration_seconds=300, daily_limit=300, max_concurrent_streams=15, has_access=True,
    ),
}


class RemainingLevel(str, Enum):
    NORMAL = "normal"
    WARNING = "warning"
    DANGER = "danger"


def remaining_level(seconds_remaining: int) -> RemainingLevel:
    if 0 < seconds_remaining <= DANGER_THRESHOLD_SECONDS:
        return RemainingLevel.DANGER
    if 0 < seconds_remaining <= WARNING_THRESHOLD_SECONDS:
        return RemainingLevel.WARNING
    return RemainingLevel.NORMAL
