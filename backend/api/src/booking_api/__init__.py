"""FastAPI adapter for the booking engine."""

__version__ = "0.1.0"
