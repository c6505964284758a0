"""Domain Layer: cache entities, configuration model, events and interfaces.

Has no dependencies on infrastructure; every other layer builds on it.
"""
