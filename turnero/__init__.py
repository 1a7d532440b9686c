"""Stateless appointment booking with emailed confirmation links."""

__version__ = "0.1.0"
