"""Domain Event definitions.

Lifecycle notifications of API calls and credential refreshes, logged at
debug level and optionally forwarded to a listener.
"""
