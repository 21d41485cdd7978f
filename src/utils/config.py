# runtime settings, read from the environment

import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    db_path: str = "data/storefront.sqlite"
    cart_dir: str = "data/carts"
    submit_timeout: float = 15.0
    debug: bool = False


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def load_settings() -> Settings:
    """Build Settings from STOREFRONT_* environment variables."""
    defaults = Settings()
    return Settings(
        db_path=os.getenv("STOREFRONT_DB_PATH", defaults.db_path),
        cart_dir=os.getenv("STOREFRONT_CART_DIR", defaults.cart_dir),
        submit_timeout=_env_float("STOREFRONT_SUBMIT_TIMEOUT", defaults.submit_timeout),
        debug=bool(os.getenv("STOREFRONT_DEBUG") or os.getenv("DEBUG")),
    )
