import json
import os
from typing import Any

from dotenv import load_dotenv
from pydantic import BaseModel, Field

from utils.get_logger import get_logger

logger = get_logger(__name__)


def load_env():
    """Load environment variables from env file.

    Defaults to config/local.env for local development.
    Set ENV_FILE environment variable to override.
    """
    env = os.getenv("ENV_FILE", "config/local.env")
    load_dotenv(env)


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        logger.warning(f"Invalid integer for {name}: {value!r}, using {default}")
        return default


class Settings(BaseModel):
    """Process-wide settings, read once at startup."""

    podcastindex_api_key: str = ""
    podcastindex_api_secret: str = ""
    taddy_api_key: str = ""
    taddy_user_id: str = ""
    youtube_api_key: str = ""
    youtube_enabled: bool = True

    redis_host: str = ""
    redis_port: int = 6379
    redis_password: str | None = None
    cache_group: str = "podcast_search"
    cache_dir: str = "/tmp/cache/podcast_search"
    cache_namespace: str = "if_search_"
    cache_version: str = "1"

    taddy_timeout: int = 30
    podcastindex_timeout: int = 30
    youtube_timeout: int = 15

    log_level: str = "INFO"
    tier_config: dict[str, dict[str, Any]] = Field(default_factory=dict)

    @classmethod
    def from_env(cls, load: bool = True) -> "Settings":
        """Build settings from the environment, loading the env file first."""
        if load:
            load_env()

        tier_config: dict[str, dict[str, Any]] = {}
        tier_path = os.getenv("TIER_CONFIG")
        if tier_path:
            try:
                with open(tier_path) as f:
                    tier_config = json.load(f)
            except (OSError, ValueError) as e:
                logger.error(f"Could not load tier config from {tier_path}: {e}")

        return cls(
            podcastindex_api_key=os.getenv("PODCASTINDEX_API_KEY", ""),
            podcastindex_api_secret=os.getenv("PODCASTINDEX_API_SECRET", ""),
            taddy_api_key=os.getenv("TADDY_API_KEY", ""),
            taddy_user_id=os.getenv("TADDY_USER_ID", ""),
            youtube_api_key=os.getenv("YOUTUBE_API_KEY", ""),
            youtube_enabled=_env_bool("YOUTUBE_ENABLED", True),
            redis_host=os.getenv("REDIS_HOST", ""),
            redis_port=_env_int("REDIS_PORT", 6379),
            redis_password=os.getenv("REDIS_PASSWORD") or None,
            cache_group=os.getenv("CACHE_GROUP", "podcast_search"),
            cache_dir=os.getenv("CACHE_DIR", "/tmp/cache/podcast_search"),
            cache_namespace=os.getenv("CACHE_NAMESPACE", "if_search_"),
            cache_version=os.getenv("CACHE_VERSION", "1"),
            taddy_timeout=_env_int("TADDY_TIMEOUT", 30),
            podcastindex_timeout=_env_int("PODCASTINDEX_TIMEOUT", 30),
            youtube_timeout=_env_int("YOUTUBE_TIMEOUT", 15),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            tier_config=tier_config,
        )
