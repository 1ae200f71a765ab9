"""marketgraph: async client for a marketplace integration API.

Normalizes JSON:API style responses into an entity store and rebuilds
nested resource graphs on demand.
"""

__version__ = "0.1.0"
