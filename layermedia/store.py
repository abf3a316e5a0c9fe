"""Encrypted local record for auth tokens and CDN credentials."""

from __future__ import annotations

import json
import logging
import os
import time
from dataclasses import asdict, dataclass
from pathlib import Path

from cryptography.fernet import Fernet, InvalidToken

from layermedia.config import DEFAULT_CONFIG_DIR

logger = logging.getLogger(__name__)

_TOKEN_KEYS = ("access_token", "refresh_token", "expires_at")
_CDN_KEY = "cdn_config"


@dataclass
class CdnConfig:
    storage_api_key: str
    storage_zone_name: str
    default_remote_path: str = ""


def _write_private(path: Path, data: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "wb") as fh:
        fh.write(data)
    os.chmod(path, 0o600)


class CredentialStore:
    """A small JSON record encrypted with a per-install Fernet key.

    An unreadable or undecryptable record reads as empty rather than
    raising; the next write replaces it.
    """

    def __init__(self, directory: Path | None = None):
        directory = Path(directory) if directory else DEFAULT_CONFIG_DIR
        self.path = directory / "credentials.bin"
        self.key_path = directory / "credentials.key"

    def _fernet(self) -> Fernet:
        if not self.key_path.exists():
            _write_private(self.key_path, Fernet.generate_key())
        return Fernet(self.key_path.read_bytes().strip())

    def _read(self) -> dict:
        if not self.path.exists():
            return {}
        try:
            return json.loads(self._fernet().decrypt(self.path.read_bytes()))
        except (InvalidToken, ValueError, OSError) as e:
            logger.warning("Credential store unreadable, treating as empty: %s", e)
            return {}

    def _write(self, data: dict) -> None:
        _write_private(self.path, self._fernet().encrypt(json.dumps(data).encode()))

    def _update(self, **values) -> None:
        data = self._read()
        for key, value in values.items():
            if value is None:
                data.pop(key, None)
            else:
                data[key] = value
        self._write(data)

    # Auth tokens

    def set_tokens(self, access_token: str, refresh_token: str, expires_at: float) -> None:
        """*expires_at* is a Unix timestamp in seconds."""
        self._update(access_token=access_token, refresh_token=refresh_token, expires_at=expires_at)

    def get_access_token(self) -> str | None:
        return self._read().get("access_token")

    def get_refresh_token(self) -> str | None:
        return self._read().get("refresh_token")

    def get_expires_at(self) -> float | None:
        return self._read().get("expires_at")

    def clear_tokens(self) -> None:
        self._update(**{key: None for key in _TOKEN_KEYS})

    def is_token_valid(self) -> bool:
        expires_at = self.get_expires_at()
        return bool(expires_at) and time.time() < expires_at

    # CDN

    def set_cdn_config(self, config: CdnConfig) -> None:
        self._update(**{_CDN_KEY: asdict(config)})

    def get_cdn_config(self) -> CdnConfig | None:
        data = self._read().get(_CDN_KEY)
        if not data:
            return None
        try:
            return CdnConfig(**data)
        except TypeError:
            logger.warning("Ignoring malformed CDN config in credential store")
            return None

    def clear_cdn_config(self) -> None:
        self._update(**{_CDN_KEY: None})
