"""Defines common Value Objects used across different domain contexts.

These objects represent simple values or concepts like resource ids,
include paths, query pairs and retry settings, ensuring consistency
and type safety.
"""

from typing import NewType, List, Tuple, TypedDict, Optional

# === Resource Graph Context ===

# Using NewType for semantic clarity, although they are strings at runtime.
ResourceId = NewType("ResourceId", str)          # Opaque identifier of a resource
IncludePath = NewType("IncludePath", str)        # Dot-separated relationship chain, e.g. 'listing.author'

# === Request Context ===
QueryPairs = NewType("QueryPairs", List[Tuple[str, str]])  # Canonical, ordered wire parameters

# === Pagination ===
DEFAULT_PAGE = 1
DEFAULT_PER_PAGE = 100
MIN_PER_PAGE = 1
MAX_PER_PAGE = 100

# Extended data namespaces usable as query filters
EXTENDED_DATA_PREFIXES: Tuple[str, ...] = ("pub_", "priv_", "prot_", "meta_")

# --- Structured Data ---
class BackoffPolicy(TypedDict):
    """Value Object representing retry backoff configuration."""
    max_retries: int
    initial_delay: float
    factor: float
    max_delay: float

class RateLimiterConfig(TypedDict):
    """Configuration of one token bucket.

    `bucket_increase_interval` is expressed in milliseconds.
    """
    bucket_initial: int
    bucket_increase_interval: int
    bucket_increase_amount: int
    bucket_maximum: int

class AuthInfo(TypedDict):
    """Describes the credential currently in use."""
    grant_type: Optional[str]
    is_anonymous: bool
    scopes: List[str]
