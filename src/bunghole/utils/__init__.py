"""Shared helpers used across the client."""
