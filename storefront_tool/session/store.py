"""Session store — the two durable keys: auth token and active cart id."""
import logging
from pathlib import Path
from typing import Optional

from cryptography.fernet import InvalidToken

from ..config import DEFAULT_CONFIG_DIR
from .crypto import SessionCrypto

logger = logging.getLogger(__name__)

DEFAULT_SESSION_PATH = DEFAULT_CONFIG_DIR / "session.enc"

TOKEN_KEY = "token"
CART_ID_KEY = "cart_id"


class SessionStore:
    """Encrypted key-value file. Holds identifiers only, never cart contents."""

    def __init__(self, session_path: Path | None = None, crypto: SessionCrypto | None = None):
        self._path = session_path or DEFAULT_SESSION_PATH
        self._crypto = crypto or SessionCrypto()

    def _read(self) -> dict:
        if not self._path.exists():
            return {}
        try:
            return self._crypto.decrypt(self._path.read_bytes())
        except InvalidToken:
            logger.warning("Session file %s could not be decrypted; starting a new session", self._path)
            return {}

    def _write(self, data: dict) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_bytes(self._crypto.encrypt(data))

    def _set(self, key: str, value: Optional[str]) -> None:
        data = self._read()
        if value:
            data[key] = value
        else:
            data.pop(key, None)
        self._write(data)

    def get_token(self) -> Optional[str]:
        return self._read().get(TOKEN_KEY)

    def set_token(self, token: Optional[str]) -> None:
        self._set(TOKEN_KEY, token)

    def get_cart_id(self) -> Optional[str]:
        return self._read().get(CART_ID_KEY)

    def set_cart_id(self, cart_id: Optional[str]) -> None:
        self._set(CART_ID_KEY, cart_id)

    def clear(self) -> None:
        """Forget both token and cart id (logout)."""
        self._write({})
        logger.info("Session cleared at %s", self._path)
