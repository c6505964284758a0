"""Core layer: the tier coordinator, its statistics and cleanup daemon, and
the command handler used by the CLI. Talks to infrastructure only through
domain interfaces.
"""
