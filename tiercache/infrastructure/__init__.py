"""Infrastructure Layer: Contains concrete implementations and adapters.

Connects the cache to the outside world (Redis, the file system, the
console) by implementing the interfaces defined in the domain layer.
Also includes configuration loading and logging setup.
"""
