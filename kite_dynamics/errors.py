"""Exceptions raised by the kite dynamics library."""


class ConfigError(ValueError):
    """Invalid configuration detected while building the simulation."""
