"""
SecretStore -- Encrypted namespaced secrets on top of the event log.

Provides the public API of kc:
- ``init(password)`` -- store the master password, create the log
- ``save(namespace, key, content)`` -- encrypt and append a ``set`` event
- ``load(namespace, key)`` -- merge, project and decrypt a secret
- ``delete(namespace, key)`` -- append a tombstone for a live secret
- ``list(prefix)`` / ``exists(namespace, key)`` -- enumerate live secrets

Every read first folds sync conflict copies into the primary log
(merge-before-read); writes never merge, they only append.

Concurrency Note:
    Nothing is locked. Two writers racing between a read and an append both
    append; on the next merge the later timestamp wins and the earlier
    write is silently superseded. This is accepted behavior.

Security Note:
    Never log plaintext, tokens or the master password. Only log
    identifiers and operations.
"""
import logging
from pathlib import Path
from typing import Optional, Union

from .config import StoreConfig
from .credentials import CredentialProvider, KeyringProvider
from .crypto import cipher_for, encrypt, decrypt
from .events import Event, EventLog
from .exceptions import NotFoundError, ValidationError
from .identifiers import format_identifier, validate
from .key_rotation import rotate_master_key
from .merge import ConflictMerger
from .projector import Entry, project

logger = logging.getLogger("kc.store")


class SecretStore:
    """Encrypted secret store backed by an append-only event log.

    Each ``namespace:key`` is either ABSENT or PRESENT: ``save`` makes it
    PRESENT from either state, ``delete`` makes a PRESENT key ABSENT.
    The current state is never persisted, it is replayed from the log on
    every read.

    Args:
        log_path: Primary event log. Defaults to ``config.log_path``.
        provider: Credential provider holding the master password.
            Defaults to the platform keyring.
        config: Store configuration. Defaults to ``StoreConfig.from_env()``.
    """

    def __init__(
        self,
        log_path: Optional[Union[str, Path]] = None,
        provider: Optional[CredentialProvider] = None,
        config: Optional[StoreConfig] = None,
    ):
        self.config = config or StoreConfig.from_env()
        self.log = EventLog(log_path or self.config.log_path)
        self.merger = ConflictMerger(self.log)
        self.provider = provider if provider is not None else KeyringProvider()
        self.cipher_cls = cipher_for(self.config.cipher_backend)

    def __repr__(self) -> str:
        return f"<SecretStore {self.log.path}>"

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def master_password(self) -> bytes:
        """Fetch the master password from the credential provider.

        Raises:
            NotFoundError: If no password is stored (run ``init`` first).
        """
        try:
            return self.provider.get(self.config.service, self.config.account)
        except NotFoundError:
            raise NotFoundError(
                "Master password not found. Run init first."
            ) from None

    def state(self) -> dict[str, Entry]:
        """Merge replicas, read the log and project current state."""
        result = self.merger.merge()
        if result.merged:
            logger.debug("Folded %d replica(s) before read", len(result.replicas))
        return project(self.log.read_all())

    def _lookup(self, namespace: str, key: str) -> Entry:
        validate(namespace, key)
        identifier = format_identifier(namespace, key)
        entry = self.state().get(identifier)
        if entry is None:
            raise NotFoundError(f"Entry '{identifier}' not found")
        return entry

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def init(self, password: Union[str, bytes]) -> None:
        """Store the master password and make sure the log exists.

        A previous master password is discarded. Secrets encrypted under it
        become unreadable; use :func:`kc.key_rotation.rotate_master_key`
        to change the password and keep the data.

        Args:
            password: New master password.

        Raises:
            ValidationError: If the password is empty.
        """
        if not password:
            raise ValidationError("Master password cannot be empty")
        service, account = self.config.service, self.config.account
        try:
            self.provider.delete(service, account)
            logger.info("Discarded previous master password")
        except NotFoundError:
            pass
        self.provider.set(service, account, password)
        self.log.ensure()
        logger.info("Initialized secret store at %s", self.log.path)

    def save(self, namespace: str, key: str, content: Union[str, bytes]) -> None:
        """Encrypt ``content`` and append a ``set`` event.

        Args:
            namespace: Secret namespace (``[a-z0-9-]+``).
            key: Secret name within the namespace.
            content: Secret value.
        """
        validate(namespace, key)
        token = encrypt(content, self.master_password(), self.cipher_cls)
        event = Event.set(namespace, key, token, ts=self.log.next_timestamp())
        self.log.append(event)
        logger.debug("Saved %s", event.identifier)

    def load(self, namespace: str, key: str) -> bytes:
        """Decrypt and return a live secret.

        Raises:
            NotFoundError: If the secret is absent.
            CryptoError: If the master password does not decrypt it.
        """
        entry = self._lookup(namespace, key)
        plaintext = decrypt(entry.value_token, self.master_password(), self.cipher_cls)
        logger.debug("Loaded %s", entry.identifier)
        return plaintext

    def delete(self, namespace: str, key: str) -> None:
        """Append a tombstone for a live secret.

        The previous ciphertext stays in the log history but no longer
        appears in the projected state.

        Raises:
            NotFoundError: If the secret is absent.
        """
        entry = self._lookup(namespace, key)
        self.log.append(Event.delete(namespace, key, ts=self.log.next_timestamp()))
        logger.debug("Deleted %s", entry.identifier)

    def exists(self, namespace: str, key: str) -> bool:
        validate(namespace, key)
        return format_identifier(namespace, key) in self.state()

    def rotate(self, new_password: Union[str, bytes]) -> dict:
        """Re-encrypt every live secret under ``new_password``."""
        return rotate_master_key(self, new_password)

    def list(self, prefix: Optional[str] = None) -> list[str]:
        """List live identifiers in ascending order.

        Args:
            prefix: Only return identifiers starting with this string
                (e.g. ``"env:"``).
        """
        identifiers = self.state().keys()
        if prefix:
            identifiers = (i for i in identifiers if i.startswith(prefix))
        return sorted(identifiers)
