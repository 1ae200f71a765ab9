"""API Resilience Implementations.

Client-side rate limiting with token buckets, and the request pipeline that
retries rejected, throttled and transient failures.
"""
