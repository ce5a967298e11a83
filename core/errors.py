"""
Exception taxonomy for Historian's Bookshelf.

Each error is handled at the boundary nearest its origin:

ConfigurationError        fatal at startup, the app must not serve requests
ValidationError           bad user input (blank topic), no network call made
RecommendationFetchError  one failed provider call, becomes an Error state
PersistenceError          storage read/write failure, logged and absorbed
"""

from __future__ import annotations


class BookshelfError(Exception):
    """Base class for all application errors."""


class ConfigurationError(BookshelfError, ValueError):
    """Required configuration (e.g. the provider API key) is missing or invalid."""


class ValidationError(BookshelfError, ValueError):
    """User input was rejected locally before any network call."""


class RecommendationFetchError(BookshelfError):
    """The recommendation provider call failed or returned unusable data."""


class PersistenceError(BookshelfError):
    """A storage backend could not read or write a value."""
