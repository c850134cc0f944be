"""Runtime settings for the GLTF viewer backend.

Values come from the environment (or `.env`). The whole configuration is
checked once and every problem is reported together, so a misconfigured
deployment fails at startup with a single readable error.
"""

from typing import Optional
from urllib.parse import urlparse

from pydantic import model_validator
from pydantic_settings import BaseSettings


def _is_valid_url(value: Optional[str], schemes: tuple[str, ...]) -> bool:
    if not value:
        return False
    parsed = urlparse(value)
    return parsed.scheme in schemes and bool(parsed.netloc)


def _has_content(value: Optional[str]) -> bool:
    return bool(value and value.strip())


class Settings(BaseSettings):
    DEBUG: bool = False
    HOST: str = "0.0.0.0"
    PORT: int = 3000
    WORKERS: int = 1
    LOG_LEVEL: str = "INFO"

    # Onshape endpoints, e.g. https://cad.onshape.com/api and https://oauth.onshape.com
    API_URL: str = ""
    OAUTH_URL: str = ""
    OAUTH_CLIENT_ID: str = ""
    OAUTH_CLIENT_SECRET: str = ""
    # Absolute URL of this server's /oauthRedirect endpoint
    OAUTH_CALLBACK_URL: str = ""
    SESSION_SECRET: str = ""
    # The viewer runs inside an Onshape iframe, so the cookie must be Secure + SameSite=None
    SESSION_HTTPS_ONLY: bool = True
    # Public root of this server; webhooks call back to <root>/api/event
    WEBHOOK_CALLBACK_ROOT_URL: str = ""

    REDIS_URL: str = "redis://localhost:6379/0"
    REDISTOGO_URL: Optional[str] = None
    REDIS_HOST: Optional[str] = None
    REDIS_PORT: Optional[str] = None
    REDIS_ENABLED: bool = True

    CORRELATION_BACKEND: str = "redis"  # redis|memory
    CORRELATION_KEY_PREFIX: str = "gltf:translation"
    CORRELATION_TTL_SECONDS: int = 3600

    ONSHAPE_TIMEOUT_SECONDS: float = 30.0

    # Default translation quality
    TRANSLATION_RESOLUTION: str = "medium"
    TRANSLATION_DISTANCE_TOLERANCE: float = 0.00012
    TRANSLATION_ANGULAR_TOLERANCE: float = 0.1090830782496456
    TRANSLATION_MAXIMUM_CHORD_LENGTH: float = 10

    CORS_ORIGINS: list[str] = ["*"]

    model_config = {
        "env_file": ".env",
        "case_sensitive": False,
        "extra": "ignore",
    }

    @model_validator(mode="after")
    def _check_configuration(self) -> "Settings":
        errors: list[str] = []
        http = ("http", "https")
        if not _is_valid_url(self.API_URL, http):
            errors.append("API_URL is not a valid HTTP(S) URL")
        if not _is_valid_url(self.OAUTH_CALLBACK_URL, http):
            errors.append("OAUTH_CALLBACK_URL is not a valid HTTP(S) URL")
        if not _has_content(self.OAUTH_CLIENT_ID):
            errors.append("OAUTH_CLIENT_ID must have content")
        if not _has_content(self.OAUTH_CLIENT_SECRET):
            errors.append("OAUTH_CLIENT_SECRET must have content")
        if not _is_valid_url(self.OAUTH_URL, http):
            errors.append("OAUTH_URL is not a valid HTTP(S) URL")
        if self.REDISTOGO_URL is not None and not _is_valid_url(self.REDISTOGO_URL, ("redis",)):
            errors.append("REDISTOGO_URL is not a valid Redis URL")
        if self.REDIS_HOST is not None and not _has_content(self.REDIS_HOST):
            errors.append("REDIS_HOST must have content")
        if self.REDIS_PORT is not None and not _has_content(self.REDIS_PORT):
            errors.append("REDIS_PORT must have content")
        if not _has_content(self.SESSION_SECRET):
            errors.append("SESSION_SECRET must have content")
        if not _is_valid_url(self.WEBHOOK_CALLBACK_ROOT_URL, http):
            errors.append("WEBHOOK_CALLBACK_ROOT_URL is not a valid HTTP(S) URL")
        if self.CORRELATION_BACKEND.strip().lower() not in {"redis", "memory"}:
            errors.append("CORRELATION_BACKEND must be 'redis' or 'memory'")
        if errors:
            raise ValueError("Invalid configuration: " + ", ".join(errors))

        self.API_URL = self.API_URL.rstrip("/")
        self.OAUTH_URL = self.OAUTH_URL.rstrip("/")
        self.WEBHOOK_CALLBACK_ROOT_URL = self.WEBHOOK_CALLBACK_ROOT_URL.rstrip("/")
        self.CORRELATION_BACKEND = self.CORRELATION_BACKEND.strip().lower()
        self.CORRELATION_TTL_SECONDS = max(60, int(self.CORRELATION_TTL_SECONDS))
        return self

    @property
    def redis_dsn(self) -> str:
        """Redis connection URL, preferring the Redis To Go add-on when deployed on Heroku."""
        if self.REDISTOGO_URL:
            return self.REDISTOGO_URL
        if self.REDIS_HOST and self.REDIS_PORT:
            return f"redis://{self.REDIS_HOST.strip()}:{self.REDIS_PORT.strip()}/0"
        return self.REDIS_URL

    @property
    def webhook_callback_url(self) -> str:
        return f"{self.WEBHOOK_CALLBACK_ROOT_URL}/api/event"


_settings_cache: Optional[Settings] = None


def get_settings() -> Settings:
    global _settings_cache
    if _settings_cache is None:
        _settings_cache = Settings()
    return _settings_cache


def reset_settings_cache() -> None:
    global _settings_cache
    _settings_cache = None
