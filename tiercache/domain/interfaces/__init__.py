"""Domain ports.

Abstract base classes for the storage tiers, the unified cache and the
operator-facing output. The core layer is written against these only.
"""
