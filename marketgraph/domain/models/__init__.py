"""Domain Models: resources, the normalized store and request/response envelopes."""
