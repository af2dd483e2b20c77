"""Marketplace API: listings, categories, users and promotional ads."""

__version__ = "1.0.0"
