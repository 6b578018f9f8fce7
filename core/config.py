"""App config via env vars"""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Remote contents API
    GITHUB_API_URL: str = "https://api.github.com"
    RAW_CONTENT_URL: str = "https://raw.githubusercontent.com"
    GITHUB_API_VERSION: str = "2022-11-28"
    USER_AGENT: str = "MediaTracker-App"

    # Local override for storage credentials, written on settings save
    STORAGE_OVERRIDE_PATH: str = "github-config.json"

    # Image shards stay below this to leave headroom under the ~1GB repo cap
    IMAGE_REPO_MAX_BYTES: int = 900 * 1024 * 1024

    SETTINGS_CACHE_TTL_SECONDS: float = 300.0

    # Third-party metadata fetches
    UPSTREAM_TIMEOUT_SECONDS: float = 15.0
    UPSTREAM_MAX_REDIRECTS: int = 5

    # Shared-secret gate
    BASIC_AUTH_USER: str = "ordon"
    BASIC_AUTH_PASS: str = "2424"
    AUTH_COOKIE_NAME: str = "mediaTrackerAuth"
    AUTH_COOKIE_MAX_AGE_SECONDS: int = 60 * 60 * 24 * 30

    LOG_LEVEL: str = "INFO"

    model_config = {"env_prefix": "", "case_sensitive": True, "env_file": ".env", "extra": "ignore"}


settings = Settings()
