"""Weather radar acquisition and serving backend."""

__version__ = "1.0.0"
