"""Scoped, time-and-use-limited sharing of health records."""

__version__ = "0.1.0"
