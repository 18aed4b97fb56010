"""Environment-driven settings for the storefront client."""
import os
from dataclasses import dataclass
from pathlib import Path

DEFAULT_CONFIG_DIR = Path.home() / ".config" / "storefront-tool"


def _get_env(*keys: str, default: str | None = None) -> str | None:
    for k in keys:
        v = os.environ.get(k)
        if v is not None and v.strip() != "":
            return v.strip()
    return default


def _get_bool(key: str, default: bool = False) -> bool:
    v = _get_env(key)
    if v is None:
        return default
    return v.lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    base_url: str
    publishable_key: str
    session_path: Path = DEFAULT_CONFIG_DIR / "session.enc"
    key_path: Path = DEFAULT_CONFIG_DIR / "session.key"
    timeout: float = 15.0
    cod_provider: str = "pp_system_default"
    online_provider: str = "pp_razorpay_razorpay"
    poll_attempts: int = 20
    poll_delay: float = 1.5
    currency: str = "inr"
    store_name: str = "Storefront"
    headless: bool = False
    debug_dir: Path = DEFAULT_CONFIG_DIR / "debug"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            base_url=(_get_env("STOREFRONT_BASE_URL", "MEDUSA_BASE_URL", default="") or "").rstrip("/"),
            publishable_key=_get_env("STOREFRONT_PUBLISHABLE_KEY", "MEDUSA_PUBLISHABLE_KEY", default="") or "",
            session_path=Path(_get_env("STOREFRONT_SESSION_PATH", default=str(DEFAULT_CONFIG_DIR / "session.enc"))),
            key_path=Path(_get_env("STOREFRONT_KEY_PATH", default=str(DEFAULT_CONFIG_DIR / "session.key"))),
            timeout=float(_get_env("STOREFRONT_TIMEOUT", default="15")),
            cod_provider=_get_env("STOREFRONT_COD_PROVIDER", default="pp_system_default"),
            online_provider=_get_env("STOREFRONT_ONLINE_PROVIDER", default="pp_razorpay_razorpay"),
            poll_attempts=int(_get_env("STOREFRONT_POLL_ATTEMPTS", default="20")),
            poll_delay=float(_get_env("STOREFRONT_POLL_DELAY", default="1.5")),
            currency=_get_env("STOREFRONT_CURRENCY", default="inr").lower(),
            store_name=_get_env("STOREFRONT_STORE_NAME", default="Storefront"),
            headless=_get_bool("STOREFRONT_HEADLESS"),
            debug_dir=Path(_get_env("STOREFRONT_DEBUG_DIR", default=str(DEFAULT_CONFIG_DIR / "debug"))),
        )


def get_settings() -> Settings:
    """Load settings from the environment. Raises ValueError if the backend is not configured."""
    settings = Settings.from_env()
    if not settings.base_url:
        raise ValueError("STOREFRONT_BASE_URL not set")
    if not settings.publishable_key:
        raise ValueError("STOREFRONT_PUBLISHABLE_KEY not set")
    return settings
