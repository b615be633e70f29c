"""
Exception taxonomy for CMS Scout.

Detection-layer errors (parsing, scanning) are mostly collected and logged;
mutation-layer errors (file updates, translations) always propagate to the
caller after any rollback has been attempted.
"""

from typing import List, Optional


class CmsScoutError(Exception):
    """Base class for every error raised by CMS Scout."""

    @property
    def kind(self) -> str:
        return type(self).__name__


# ============================================================================
# SCANNING
# ============================================================================


class EmptyContentError(CmsScoutError, ValueError):
    """Raised when HTML to parse or scan is empty or not a string."""


class ParseError(CmsScoutError):
    """
    Non-fatal parser problem.

    Instances are collected on ParsedDocument.errors and never raised by the
    parser adapter itself.
    """

    def __init__(self, message: str, line: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.line = line

    def __repr__(self) -> str:
        return f"ParseError(line={self.line}, message={self.message!r})"


class InvalidUrlError(CmsScoutError, ValueError):
    """Raised when a page URL cannot be normalised into an absolute http(s) URL."""


class FetchError(CmsScoutError):
    """Raised when a remote page cannot be fetched (transport error, non-2xx)."""


class FetchTimeoutError(FetchError):
    """Raised when fetching a remote page exceeds the configured timeout."""


class ContentTooLargeError(FetchError):
    """Raised when a fetched page exceeds scanner.max_content_length."""


# ============================================================================
# FILE UPDATES
# ============================================================================


class UpdateError(CmsScoutError):
    """Base class for file mutation failures."""


class FileAccessError(UpdateError):
    """Raised when a target file is missing, unreadable or not writable."""


class PathNotAllowedError(UpdateError):
    """Raised when a target file lies outside updater.allowed_directories."""


class LockContentionError(UpdateError):
    """Raised immediately when another caller holds the file lock."""


class AtomicWriteVerificationError(UpdateError):
    """Raised when the temp file does not read back byte-identical."""


class ValidationError(UpdateError):
    """Raised when updated content fails strategy validation."""

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        super().__init__(message)
        self.errors = list(errors or [])


class ContentNotFoundError(UpdateError):
    """Raised when an update operation has nothing to act on."""


class BackupNotFoundError(UpdateError):
    """Raised when a backup id is unknown or its file is gone."""


class BackupCorruptedError(UpdateError):
    """Raised when a backup's checksum no longer matches its index record."""


class UnknownStrategyError(UpdateError):
    """Raised when a caller forces a strategy name that is not registered."""


class UnknownOperationTypeError(UpdateError):
    """Raised when a batch contains an operation type we do not understand."""


# ============================================================================
# TRANSLATIONS
# ============================================================================


class TranslationError(CmsScoutError):
    """Base class for translation store failures."""


class InvalidKeyError(TranslationError, ValueError):
    """Raised when a translation key does not match ^[a-zA-Z0-9._-]+$."""


class UnsafeContentError(TranslationError, ValueError):
    """Raised when a translation value is too long or contains unsafe markup."""


class UnsupportedFormatError(TranslationError, ValueError):
    """Raised for export/import formats other than json and yaml."""
