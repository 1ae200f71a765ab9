"""Infrastructure Layer: Contains concrete implementations and adapters.

Connects the client to the outside world (HTTP, the file system, the
console) by implementing the interfaces defined in the domain layer.
"""
