"""
kc Exceptions.

Every error raised by the store derives from ``KcError``. The concrete
classes also subclass the closest builtin so callers that only know
``KeyError`` / ``ValueError`` / ``OSError`` keep working.
"""


class KcError(Exception):
    """Base exception for kc errors."""


class ValidationError(KcError, ValueError):
    """Malformed identifier, namespace or key."""


class NotFoundError(KcError, KeyError):
    """Secret (or master password) does not exist."""

    def __str__(self) -> str:
        # KeyError quotes its argument; keep messages readable.
        return str(self.args[0]) if self.args else ""


class CryptoError(KcError):
    """Decryption failed: wrong password, tampered or corrupt token."""


class StorageError(KcError, OSError):
    """Event log or credential provider I/O failure."""


class ParseError(KcError, ValueError):
    """A single event-log line could not be parsed."""
