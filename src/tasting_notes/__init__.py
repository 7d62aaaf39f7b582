"""Tasting Notes API: tasting notes, social graph and visibility-scoped feeds."""

__version__ = "1.0.0"
