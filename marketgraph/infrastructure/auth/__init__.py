"""Credential storage and the token lifecycle (exchange, refresh, revoke)."""
