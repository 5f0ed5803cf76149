# resilient_http/core/config.py
from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

# ----- Static defaults -----
LEGACY_USER_AGENT = "Mozilla/4.0 (compatible; MSIE 8.0; Windows NT 6.1; Trident/4.0)"

RETRY_METHODS = frozenset({"GET", "HEAD", "DELETE", "OPTIONS"})
RETRY_STATUS_CODES = frozenset({403, 408, 413, 429, 500, 502, 503, 504})

# ----- Client settings (env-driven) -----
class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="RESILIENT_HTTP_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    timeout_ms: float = 10000
    retries: int = 2
    user_agent: str = LEGACY_USER_AGENT
    log_level: str = "INFO"

@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
