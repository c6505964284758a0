"""Domain Event definitions.

Represents significant occurrences within the cache (evictions, failed
background propagation, cleanup passes) that observers might react to.
"""
