"""Directory-backed authentication and group authorization."""

__version__ = "0.1.0"
