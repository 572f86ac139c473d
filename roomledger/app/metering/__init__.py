"""Usage metering against plan quotas."""

from .models import MeteredResult, UsageSummary
from .service import UsageMeterLedger, period_key_for, usage_record_path, validate_period_key

__all__ = [
    "MeteredResult",
    "UsageMeterLedger",
    "UsageSummary",
    "period_key_for",
    "usage_record_path",
    "validate_period_key",
]
