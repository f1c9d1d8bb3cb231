"""Configuration settings and credential persistence for finishstrong."""

import json
import logging
import tempfile
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional
from urllib.parse import urlparse

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from finishstrong.utils import get_finishstrong_home

logger = logging.getLogger(__name__)

CREDENTIALS_FILENAME = "credentials.json"
DEFAULT_DB_FILENAME = "finishstrong.db"


def _is_local_http(url: str) -> bool:
    """Check if a URL is a local development HTTP URL (localhost or 127.0.0.1)."""
    try:
        hostname = urlparse(url).hostname
    except ValueError:
        return False
    return hostname in ("localhost", "127.0.0.1")


def validate_service_url(url: Optional[str]) -> Optional[str]:
    """Reject plaintext URLs that would carry auth tokens off-host.

    https:// is always accepted; http:// only for localhost development.
    """
    if not url:
        return None
    url = url.strip().rstrip("/")
    if url.startswith("https://"):
        return url
    if url.startswith("http://") and _is_local_http(url):
        return url
    raise ValueError(f"Refusing non-HTTPS service URL: {url}")


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    model_config = SettingsConfigDict(
        env_prefix="FINISHSTRONG_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    home: Path = Field(default_factory=get_finishstrong_home)
    db_path: Optional[Path] = None

    # Supabase (remote replica + auth)
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None  # publishable / anon key, never the service key

    # Interpretation service
    interpreter_url: Optional[str] = None
    interpreter_timeout: float = 30.0

    # Sync behaviour
    debounce_seconds: float = 2.0
    stale_after_hours: float = 2.0

    log_level: str = "WARNING"

    @field_validator("supabase_url", "interpreter_url")
    @classmethod
    def _check_url(cls, value: Optional[str]) -> Optional[str]:
        return validate_service_url(value)

    @field_validator("debounce_seconds", "stale_after_hours", "interpreter_timeout")
    @classmethod
    def _check_positive(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("must be greater than zero")
        return value

    @property
    def remote_configured(self) -> bool:
        return bool(self.supabase_url and self.supabase_key)

    def resolve_home(self) -> Path:
        """Create the home directory, falling back to a temp dir if not writable."""
        try:
            self.home.mkdir(parents=True, exist_ok=True)
            return self.home
        except OSError as e:
            fallback = Path(tempfile.gettempdir()) / ".finishstrong"
            logger.warning(f"Cannot write to {self.home} ({e}), falling back to {fallback}")
            fallback.mkdir(parents=True, exist_ok=True)
            self.home = fallback
            return fallback

    def resolve_db_path(self) -> Path:
        if self.db_path is not None:
            return self.db_path
        return self.resolve_home() / DEFAULT_DB_FILENAME

    @property
    def credentials_path(self) -> Path:
        return self.home / CREDENTIALS_FILENAME


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# =============================================================================
# Credentials
# =============================================================================


def load_credentials(path: Path) -> Optional[Dict[str, Any]]:
    """Load persisted auth credentials, or None when absent or unreadable."""
    if not path.exists():
        return None
    try:
        with open(path) as f:
            creds = json.load(f)
    except (json.JSONDecodeError, OSError) as e:
        logger.debug(f"Failed to load credentials file {path}: {e}")
        return None
    if not isinstance(creds, dict):
        logger.debug(f"Ignoring malformed credentials file {path}")
        return None
    return creds


def save_credentials(path: Path, credentials: Dict[str, Any]) -> None:
    """Persist auth credentials with owner-only permissions."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        json.dump(credentials, f, indent=2)
    path.chmod(0o600)


def clear_credentials(path: Path) -> bool:
    """Remove the credentials file. Returns True if one existed."""
    if path.exists():
        path.unlink()
        return True
    return False
