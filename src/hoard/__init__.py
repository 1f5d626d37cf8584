"""Hoard - collects media shared in chat and files it away."""

__version__ = "0.1.0"
