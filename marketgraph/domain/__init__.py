"""Domain Layer: resource models, value objects, errors, events and ports."""
