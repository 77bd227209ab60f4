"""Tane: plant startup ideas, grow them into research reports."""

__version__ = "0.3.0"
