"""Runtime settings for storefront."""

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

# Local data directory within the storefront project
# Can be overridden via STOREFRONT_DATA_DIR environment variable
_default_data_dir = Path(__file__).parent.parent.parent / "data"

DATABASE_FILE = "storefront.db"
TOKENS_FILE = "tokens.json"
CART_FILE = "cart.json"
DEFAULT_API_URL = "http://127.0.0.1:8000"


@dataclass(frozen=True)
class Settings:
    """Paths and URLs the app and CLI need."""

    data_dir: Path
    database_url: str
    tokens_file: Path
    cart_file: Path
    api_url: str = DEFAULT_API_URL
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        data_dir = Path(os.environ.get("STOREFRONT_DATA_DIR", _default_data_dir))
        return cls(
            data_dir=data_dir,
            database_url=os.environ.get(
                "STOREFRONT_DATABASE_URL", f"sqlite:///{data_dir / DATABASE_FILE}"
            ),
            tokens_file=Path(
                os.environ.get("STOREFRONT_TOKENS_FILE", data_dir / TOKENS_FILE)
            ),
            cart_file=Path(os.environ.get("STOREFRONT_CART_FILE", data_dir / CART_FILE)),
            api_url=os.environ.get("STOREFRONT_API_URL", DEFAULT_API_URL),
            log_level=os.environ.get("STOREFRONT_LOG_LEVEL", "INFO").upper(),
        )

    @classmethod
    def for_directory(cls, data_dir: Path) -> "Settings":
        """Settings rooted at an explicit directory (for testing)."""
        return cls(
            data_dir=data_dir,
            database_url=f"sqlite:///{data_dir / DATABASE_FILE}",
            tokens_file=data_dir / TOKENS_FILE,
            cart_file=data_dir / CART_FILE,
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get the process-wide settings."""
    return Settings.from_env()
