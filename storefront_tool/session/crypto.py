"""Fernet encryption for the on-disk session file."""
import json
import logging
import os
from pathlib import Path

from cryptography.fernet import Fernet

from ..config import DEFAULT_CONFIG_DIR

logger = logging.getLogger(__name__)

DEFAULT_KEY_PATH = DEFAULT_CONFIG_DIR / "session.key"


class SessionCrypto:
    """Encrypts dicts to bytes with a locally stored Fernet key."""

    def __init__(self, key_path: Path | None = None):
        self._key_path = key_path or DEFAULT_KEY_PATH
        self._fernet: Fernet | None = None

    def _get_fernet(self) -> Fernet:
        if self._fernet:
            return self._fernet
        if self._key_path.exists():
            key = self._key_path.read_bytes()
        else:
            key = Fernet.generate_key()
            self._key_path.parent.mkdir(parents=True, exist_ok=True)
            self._key_path.write_bytes(key)
            os.chmod(self._key_path, 0o600)
            logger.info("Created session key at %s", self._key_path)
        self._fernet = Fernet(key)
        return self._fernet

    def encrypt(self, data: dict) -> bytes:
        return self._get_fernet().encrypt(json.dumps(data).encode("utf-8"))

    def decrypt(self, token: bytes) -> dict:
        """Raises cryptography.fernet.InvalidToken on tampered data or a wrong key."""
        return json.loads(self._get_fernet().decrypt(token).decode("utf-8"))
