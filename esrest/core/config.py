"""Runtime settings for the search client.

Values come from the environment (case-insensitive) or a local ``.env`` file.
"""

from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    ES_HOST: str = "localhost"
    ES_PORT: int = 9200
    ES_SCHEME: str = "http"  # http|https

    # Basic auth is only sent when both are set
    ES_USERNAME: Optional[str] = None
    ES_PASSWORD: Optional[str] = None

    ES_REQUEST_TIMEOUT_SECONDS: float = 30.0
    # Keep-alive window sent with every scroll request
    ES_SCROLL_KEEP_ALIVE: str = "1m"

    LOG_LEVEL: str = "INFO"

    model_config = {
        "env_file": ".env",
        "case_sensitive": False,
        "extra": "ignore",
    }

    @property
    def basic_auth(self) -> Optional[tuple[str, str]]:
        if self.ES_USERNAME and self.ES_PASSWORD:
            return (self.ES_USERNAME, self.ES_PASSWORD)
        return None


_settings_cache: Optional[Settings] = None


def get_settings() -> Settings:
    global _settings_cache
    if _settings_cache is None:
        _settings_cache = Settings()
    return _settings_cache


def reset_settings() -> None:
    global _settings_cache
    _settings_cache = None
