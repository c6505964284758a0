"""Application services: the multi-level cache coordinator and its statistics."""
