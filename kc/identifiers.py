"""Secret identifiers: ``<namespace>:<key>``, e.g. ``env:myproject``."""
import re

from .exceptions import ValidationError

NAMESPACE_PATTERN = re.compile(r"^[a-z0-9-]+$")


def validate(namespace: str, key: str) -> None:
    """Validate an identifier already split in namespace and key.

    Raises:
        ValidationError: If the namespace is not ``[a-z0-9-]+`` or the key
            is empty.
    """
    if not namespace or not key:
        raise ValidationError("Invalid format. Use <namespace>:<name>")
    if not NAMESPACE_PATTERN.match(namespace):
        raise ValidationError(
            "Namespace must contain only lowercase letters, numbers, and hyphens"
        )


def parse_identifier(identifier: str) -> tuple[str, str]:
    """Split ``namespace:key`` and validate both parts.

    Only the first ``:`` separates, so keys may contain colons.

    Raises:
        ValidationError: If the identifier is malformed.
    """
    if not identifier or ":" not in identifier:
        raise ValidationError(
            "Namespace required. Format: <namespace>:<name> "
            "(examples: env:myproject, ssh:id_rsa, token:github)"
        )
    namespace, key = identifier.split(":", 1)
    validate(namespace, key)
    return namespace, key


def format_identifier(namespace: str, key: str) -> str:
    """Join namespace and key as ``namespace:key``."""
    return f"{namespace}:{key}"
