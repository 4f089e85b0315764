"""
Capture pipeline configuration.

Extends base configuration with the tunables used by observers, delivery,
routing and inference. Every field can be overridden with a SESSIONTAP_
prefixed environment variable (e.g. SESSIONTAP_BODY_CAPTURE_LIMIT=100000).
"""

from __future__ import annotations

import pydantic

from sessiontap.config.base import BaseTapSettings, lazy_settings

DEFAULT_USER_AGENT = (
    'Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 '
    '(KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36'
)


class CaptureSettings(BaseTapSettings):
    """Capture and inference tunables."""

    # Reported as Session Snapshot userAgent
    USER_AGENT: str = DEFAULT_USER_AGENT

    # Observers
    BODY_CAPTURE_LIMIT: int = 500_000  # bytes kept per request/response body
    STREAM_MESSAGE_LIMIT: int = 100_000  # bytes kept per stream message
    CAPTURED_URL_TTL_SECONDS: float = 600.0  # how long a primary capture suppresses the fallback observer
    CAPTURED_URL_MAX: int = 10_000

    # Delivery buffer
    DELIVERY_RETRY_INTERVAL: float = 0.05  # seconds between readiness checks
    DELIVERY_RETRY_BACKOFF: float = 1.0  # 1.0 = fixed interval, >1.0 = exponential
    DELIVERY_RETRY_MAX_INTERVAL: float = 1.0
    DELIVERY_GRACE_WINDOW: float = 30.0  # seconds before an unreachable sink is abandoned
    BACKLOG_WARNING_THRESHOLD: int = 5_000

    # Domain router
    ESCALATION_DEBOUNCE_SECONDS: float = 1.0
    UNMAPPED_HOLD_LIMIT: int = 1_000  # exchanges held per unresolved domain

    # Credential signals
    AUTH_HEADER_PREFIX: str = 'x-auth-'
    COOKIE_SIGNAL_MIN_LENGTH: int = 21

    # Endpoint inference
    ID_SEGMENT_MIN_LENGTH: int = 16
    ID_SEGMENT_MIN_ENTROPY: float = 3.0  # Shannon bits per character
    SHAPE_MAX_DEPTH: int = 3
    CATALOG_FLUSH_EVERY: int = 50

    @pydantic.field_validator(
        'BODY_CAPTURE_LIMIT',
        'STREAM_MESSAGE_LIMIT',
        'CAPTURED_URL_MAX',
        'BACKLOG_WARNING_THRESHOLD',
        'UNMAPPED_HOLD_LIMIT',
        'ID_SEGMENT_MIN_LENGTH',
        'CATALOG_FLUSH_EVERY',
    )
    @classmethod
    def validate_positive_int(cls, v: int) -> int:
        """Validate limits and counters are positive."""
        if v <= 0:
            raise ValueError('must be a positive integer')
        return v

    @pydantic.field_validator(
        'CAPTURED_URL_TTL_SECONDS',
        'DELIVERY_RETRY_INTERVAL',
        'DELIVERY_RETRY_MAX_INTERVAL',
        'DELIVERY_GRACE_WINDOW',
        'ESCALATION_DEBOUNCE_SECONDS',
    )
    @classmethod
    def validate_positive_seconds(cls, v: float) -> float:
        """Validate intervals are positive."""
        if v <= 0:
            raise ValueError('must be a positive number of seconds')
        return v

    @pydantic.field_validator('DELIVERY_RETRY_BACKOFF')
    @classmethod
    def validate_backoff(cls, v: float) -> float:
        """Validate the backoff factor never shrinks the interval."""
        if v < 1.0:
            raise ValueError('DELIVERY_RETRY_BACKOFF must be >= 1.0')
        return v

    @pydantic.field_validator('ID_SEGMENT_MIN_ENTROPY')
    @classmethod
    def validate_entropy(cls, v: float) -> float:
        """Validate entropy threshold is within bits-per-character bounds."""
        if not 0.0 <= v <= 8.0:
            raise ValueError('ID_SEGMENT_MIN_ENTROPY must be between 0-8')
        return v

    @pydantic.field_validator('AUTH_HEADER_PREFIX')
    @classmethod
    def validate_prefix(cls, v: str) -> str:
        """Header names are compared lowercase."""
        if not v:
            raise ValueError('AUTH_HEADER_PREFIX must not be empty')
        return v.lower()


# Module-level singleton (lazy-loaded)
settings = lazy_settings(CaptureSettings)
