"""Shared helpers used across code resolution, location inference and imports."""

__all__ = [
    "exceptions",
]
