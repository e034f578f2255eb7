"""
Credential Providers -- where the master password lives.

The store never writes the master password to disk itself. It asks a
provider, injected into :class:`kc.store.SecretStore`:

- :class:`KeyringProvider` uses the ``keyring`` library (macOS Keychain,
  Secret Service, Windows Credential Locker, ...).
- :class:`MemoryProvider` keeps secrets in a dict, for tests and
  ephemeral use.

Security Note:
    Never log the secret value, only service/account names.
"""
import logging
from typing import Protocol, Union, runtime_checkable

import keyring
from keyring.errors import KeyringError, PasswordDeleteError

from .exceptions import NotFoundError, StorageError

logger = logging.getLogger("kc.credentials")


def _to_bytes(secret: Union[str, bytes]) -> bytes:
    return secret.encode("utf-8") if isinstance(secret, str) else bytes(secret)


@runtime_checkable
class CredentialProvider(Protocol):
    """Minimal credential store interface."""

    def get(self, service: str, account: str) -> bytes:
        """Return the stored secret; raise NotFoundError if there is none."""
        ...

    def set(self, service: str, account: str, secret: Union[str, bytes]) -> None:
        """Store ``secret``, replacing any previous value."""
        ...

    def delete(self, service: str, account: str) -> None:
        """Remove the secret; raise NotFoundError if there is none."""
        ...


class KeyringProvider:
    """Credential provider backed by the platform keyring.

    Args:
        backend: Optional explicit keyring backend; the default backend
            selected by ``keyring`` is used otherwise.
    """

    def __init__(self, backend=None):
        self._backend = backend

    @property
    def backend(self):
        """Explicit backend, or the default one chosen by ``keyring``."""
        return self._backend if self._backend is not None else keyring.get_keyring()

    def get(self, service: str, account: str) -> bytes:
        try:
            value = self.backend.get_password(service, account)
        except KeyringError as err:
            raise StorageError(f"Keyring read failed for {service}/{account}: {err}") from err
        if value is None:
            raise NotFoundError(f"No credential stored for {service}/{account}")
        return value.encode("utf-8")

    def set(self, service: str, account: str, secret: Union[str, bytes]) -> None:
        try:
            self.backend.set_password(service, account, _to_bytes(secret).decode("utf-8"))
        except UnicodeDecodeError as err:
            raise StorageError("Keyring secrets must be valid UTF-8") from err
        except KeyringError as err:
            raise StorageError(f"Keyring write failed for {service}/{account}: {err}") from err
        logger.debug("Stored credential %s/%s in keyring", service, account)

    def delete(self, service: str, account: str) -> None:
        try:
            self.backend.delete_password(service, account)
        except PasswordDeleteError as err:
            raise NotFoundError(f"No credential stored for {service}/{account}") from err
        except KeyringError as err:
            raise StorageError(f"Keyring delete failed for {service}/{account}: {err}") from err
        logger.debug("Deleted credential %s/%s from keyring", service, account)


class MemoryProvider:
    """In-process credential provider."""

    def __init__(self):
        self._secrets: dict[tuple[str, str], bytes] = {}

    def get(self, service: str, account: str) -> bytes:
        try:
            return self._secrets[(service, account)]
        except KeyError:
            raise NotFoundError(f"No credential stored for {service}/{account}") from None

    def set(self, service: str, account: str, secret: Union[str, bytes]) -> None:
        self._secrets[(service, account)] = _to_bytes(secret)

    def delete(self, service: str, account: str) -> None:
        if self._secrets.pop((service, account), None) is None:
            raise NotFoundError(f"No credential stored for {service}/{account}")

    def __len__(self) -> int:
        return len(self._secrets)
