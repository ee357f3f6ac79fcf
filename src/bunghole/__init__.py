"""Bunghole desktop client: worker orchestration, sessions and self-update."""

__all__ = ["__version__"]

__version__ = "2.11.0"
