"""
Store Configuration -- validated settings for the secret store.

Reads settings from environment variables:
    KC_HOME            = directory holding the event log (default ~/.kc)
    KC_LOG_NAME        = event log file name (default events.jsonl)
    KC_SERVICE         = credential provider service name (default kc)
    KC_ACCOUNT         = credential provider account name (default master)
    KC_CIPHER_BACKEND  = aesgcm | chacha20

Security Note:
    The master password is never part of the configuration. It lives in
    the credential provider only.
"""
import os
import logging
from pathlib import Path

from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger("kc.config")

DEFAULT_HOME = Path("~/.kc")
DEFAULT_LOG_NAME = "events.jsonl"
DEFAULT_SERVICE = "kc"
DEFAULT_ACCOUNT = "master"
CIPHER_BACKENDS = ("aesgcm", "chacha20")


def get_cipher_backend() -> str:
    """Read the AEAD backend name from KC_CIPHER_BACKEND (default aesgcm)."""
    return os.environ.get("KC_CIPHER_BACKEND", "aesgcm").lower()


class StoreConfig(BaseModel):
    """Validated store configuration."""

    home: Path = Field(default=DEFAULT_HOME, validate_default=True)
    log_name: str = Field(default=DEFAULT_LOG_NAME)
    service: str = Field(default=DEFAULT_SERVICE)
    account: str = Field(default=DEFAULT_ACCOUNT)
    cipher_backend: str = Field(default="aesgcm")

    @field_validator("home")
    @classmethod
    def expand_home(cls, v: Path) -> Path:
        """Expand ``~`` so the log path is absolute-ish and stable."""
        return v.expanduser()

    @field_validator("log_name")
    @classmethod
    def validate_log_name(cls, v: str) -> str:
        """Log name must be a bare file name."""
        if not v or v in (".", ".."):
            raise ValueError("log_name cannot be empty")
        if "/" in v or "\\" in v:
            raise ValueError(f"log_name must not contain path separators: {v}")
        return v

    @field_validator("service", "account")
    @classmethod
    def validate_credential_name(cls, v: str) -> str:
        if not v:
            raise ValueError("credential service/account cannot be empty")
        return v

    @field_validator("cipher_backend")
    @classmethod
    def validate_cipher(cls, v: str) -> str:
        """Validate cipher backend is supported."""
        v = v.lower()
        if v not in CIPHER_BACKENDS:
            raise ValueError(f"Unsupported cipher backend: {v}")
        return v

    @property
    def log_path(self) -> Path:
        """Full path of the primary event log."""
        return self.home / self.log_name

    @classmethod
    def from_env(cls) -> "StoreConfig":
        """Create StoreConfig by loading values from environment.

        Returns:
            Populated StoreConfig instance.
        """
        config = cls(
            home=Path(os.environ.get("KC_HOME", str(DEFAULT_HOME))),
            log_name=os.environ.get("KC_LOG_NAME", DEFAULT_LOG_NAME),
            service=os.environ.get("KC_SERVICE", DEFAULT_SERVICE),
            account=os.environ.get("KC_ACCOUNT", DEFAULT_ACCOUNT),
            cipher_backend=get_cipher_backend(),
        )
        logger.debug("Loaded store config: log_path=%s", config.log_path)
        return config
