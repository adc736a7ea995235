"""Flight training scenario engine."""

__version__ = "0.1.0"
