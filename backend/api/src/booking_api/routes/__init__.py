"""API route modules, each exposing a ``router``."""
