"""Core Application Layer: query building, normalization, denormalization,
the endpoint table and the client facade.

Depends on domain interfaces; concrete adapters are injected.
"""
