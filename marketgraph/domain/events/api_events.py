"""Domain Events related to API calls and resilience.

Examples include events for when calls are deferred by the rate limiter,
retried, fail, or succeed, and when the credential is refreshed.
"""

from dataclasses import dataclass, field
import time
from typing import Optional

@dataclass
class DomainEvent:
    """Base class for domain events."""
    pass

# --- Specific API Events ---

@dataclass
class CallInitiated(DomainEvent):
    """Event triggered when an API call is about to be made."""
    endpoint: str # e.g., 'listings.show'
    channel: str  # 'query' or 'command'
    attempt_number: int = 1
    timestamp: float = field(default_factory=time.time)

@dataclass
class CallSucceeded(DomainEvent):
    """Event triggered when an API call succeeds."""
    endpoint: str
    status: int
    latency_ms: float
    timestamp: float = field(default_factory=time.time)

@dataclass
class CallFailed(DomainEvent):
    """Event triggered when an API call fails definitively (after retries)."""
    endpoint: str
    error_type: str
    error_message: str
    status: Optional[int] = None
    timestamp: float = field(default_factory=time.time)

@dataclass
class CallDeferred(DomainEvent):
    """Event triggered when an API call has to wait for a rate limiter token."""
    endpoint: str
    channel: str
    timestamp: float = field(default_factory=time.time)

@dataclass
class RetryScheduled(DomainEvent):
    """Event triggered when a retry is scheduled for a failed API call."""
    endpoint: str
    attempt_number: int
    delay_seconds: float
    reason: str
    timestamp: float = field(default_factory=time.time)

@dataclass
class RateLimitHit(DomainEvent):
    """Event triggered when the server answers 429 and the bucket is emptied."""
    endpoint: str
    channel: str
    timestamp: float = field(default_factory=time.time)

@dataclass
class CredentialRefreshed(DomainEvent):
    """Event triggered when a new credential has been obtained."""
    grant_type: str
    expires_in: Optional[int] = None
    timestamp: float = field(default_factory=time.time)
