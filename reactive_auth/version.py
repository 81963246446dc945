"""Version information for reactive-auth."""

__version__ = "0.1.0"
