"""
Master Key Rotation -- Re-encryption of live secrets under a new password.

Decrypts every live secret with the current master password, re-encrypts
it with the new one and appends a ``set`` event per secret. The password in
the credential provider is replaced only after all events are appended.
If any secret cannot be decrypted nothing is written.

Limitation:
    A crash after some appends but before the provider is updated leaves
    secrets encrypted under the new password while the provider still
    holds the old one. Re-running the rotation with the same new password
    is not enough to recover; run ``init(new_password)`` instead.

Security Note:
    Plaintext exists in memory only while each secret is re-encrypted.
    Never log plaintext, tokens or passwords.
"""
import logging
from typing import Any, Union

from .crypto import decrypt, encrypt
from .events import Event
from .exceptions import CryptoError, ValidationError

logger = logging.getLogger("kc.key_rotation")


def rotate_master_key(store: Any, new_password: Union[str, bytes]) -> dict:
    """Re-encrypt all live secrets of ``store`` under ``new_password``.

    Args:
        store: A :class:`kc.store.SecretStore`.
        new_password: Master password to rotate to.

    Returns:
        Stats dict with keys: total, rotated, errors.

    Raises:
        ValidationError: If the new password is empty.
        NotFoundError: If the store has no master password yet.
        CryptoError: If any live secret fails to decrypt with the current
            password. The log and the provider are left unchanged.
    """
    if not new_password:
        raise ValidationError("Master password cannot be empty")

    old_password = store.master_password()
    state = store.state()
    stats = {"total": 0, "rotated": 0, "errors": 0}
    pending: list[Event] = []

    logger.info("Starting master key rotation (%d secret(s))", len(state))

    for identifier in sorted(state):
        entry = state[identifier]
        stats["total"] += 1
        try:
            plaintext = decrypt(entry.value_token, old_password, store.cipher_cls)
        except CryptoError as err:
            logger.error("Error rotating secret %s: %s", identifier, err)
            stats["errors"] += 1
            continue
        pending.append(
            Event.set(
                entry.namespace,
                entry.key,
                encrypt(plaintext, new_password, store.cipher_cls),
                ts=store.log.next_timestamp(),
            )
        )

    if stats["errors"]:
        raise CryptoError(
            f"Rotation aborted: {stats['errors']} of {stats['total']} "
            f"secret(s) could not be decrypted"
        )

    for event in pending:
        store.log.append(event)
        stats["rotated"] += 1

    store.init(new_password)
    logger.info("Master key rotation complete: %s", stats)
    return stats
