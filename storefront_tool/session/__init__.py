"""Encrypted durable session: auth token and active cart id."""
from .crypto import SessionCrypto
from .store import SessionStore

__all__ = ["SessionCrypto", "SessionStore"]
