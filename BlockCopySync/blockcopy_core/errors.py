"""
Block Copy Exceptions
=====================

Malformed fragments and unresolvable references are recovered locally and
never raised. Everything here is a failure the caller has to see.
"""

from typing import Optional


class BlockCopyError(Exception):
    """Base class for all block copy errors."""


class ConfigError(BlockCopyError):
    """Invalid or unreadable configuration."""


class ResolutionError(BlockCopyError):
    """Transport or authorization failure while resolving IDs to locators."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class FetchError(BlockCopyError):
    """A locator could not be downloaded."""

    def __init__(self, url: str, reason: str):
        super().__init__(f"Failed to download {url}: {reason}")
        self.url = url
        self.reason = reason


class AssetStoreError(BlockCopyError):
    """The destination asset store rejected an operation."""


class ContentStoreError(BlockCopyError):
    """Content could not be read from or written to the content store."""


class CacheError(BlockCopyError):
    """The resolution cache backend failed to read or write an entry."""
