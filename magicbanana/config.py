import os
from dataclasses import dataclass

DEFAULT_GEMINI_MODEL = "gemini-2.5-flash-image-preview"
DEFAULT_CODEFORMER_VERSION = "cc4956dd26fa5a7185d5660cc9100fab1b8070a1d1654a8bb5eb6d443b020bb2"


def _env_number(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return value.strip()


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    gemini_api_key: str | None
    replicate_api_token: str | None
    gemini_model: str
    gemini_api_base: str
    replicate_api_base: str
    codeformer_version: str
    enhance_poll_interval: float
    enhance_max_attempts: int
    cookie_secure: bool
    log_level: str


def get_settings() -> Settings:
    """Read settings from the environment.

    Called per request rather than cached so values loaded from ``.env`` in the
    lifespan, or patched in tests, are always seen.
    """
    return Settings(
        gemini_api_key=os.getenv("GEMINI_API_KEY"),
        replicate_api_token=os.getenv("REPLICATE_API_TOKEN"),
        gemini_model=os.getenv("GEMINI_MODEL", DEFAULT_GEMINI_MODEL),
        gemini_api_base=os.getenv(
            "GEMINI_API_BASE", "https://generativelanguage.googleapis.com/v1beta"
        ).rstrip("/"),
        replicate_api_base=os.getenv("REPLICATE_API_BASE", "https://api.replicate.com/v1").rstrip("/"),
        codeformer_version=os.getenv("CODEFORMER_VERSION", DEFAULT_CODEFORMER_VERSION),
        enhance_poll_interval=float(_env_number("ENHANCE_POLL_INTERVAL", "5")),
        enhance_max_attempts=int(_env_number("ENHANCE_MAX_ATTEMPTS", "60")),
        cookie_secure=_env_bool("COOKIE_SECURE", True),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )
