"""Cache tier adapters.

L1 in-memory, L2 Redis and L3 sharded files, all behind CacheTier, plus
the key normalizer and the item codec they share.
"""
