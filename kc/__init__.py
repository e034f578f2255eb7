"""kc -- Encrypted secret store on an append-only event log.

Secrets are never kept as a key/value table. The log records timestamped
``set`` / ``delete`` events and the current state is replayed on every
read, after folding in any conflict copies a file-sync tool left behind.

Security Note (Threat Model):
    Values are encrypted one by one with a key derived from the master
    password, which lives in the platform keyring. Identifiers and
    timestamps are stored in clear text, and deleted ciphertexts remain in
    the log history. Anyone holding both the log and the master password
    can read every secret, including deleted ones.
"""

from .version import __version__
from .config import StoreConfig
from .credentials import CredentialProvider, KeyringProvider, MemoryProvider
from .events import Event, EventLog
from .exceptions import (
    CryptoError,
    KcError,
    NotFoundError,
    ParseError,
    StorageError,
    ValidationError,
)
from .identifiers import parse_identifier
from .key_rotation import rotate_master_key
from .merge import ConflictMerger, MergeResult
from .projector import Entry, project
from .store import SecretStore

__all__ = [
    "__version__",
    "SecretStore",
    "StoreConfig",
    "CredentialProvider",
    "KeyringProvider",
    "MemoryProvider",
    "Event",
    "EventLog",
    "ConflictMerger",
    "MergeResult",
    "Entry",
    "project",
    "parse_identifier",
    "rotate_master_key",
    "KcError",
    "ValidationError",
    "NotFoundError",
    "CryptoError",
    "StorageError",
    "ParseError",
]
