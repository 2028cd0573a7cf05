from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache
from typing import Optional

class Settings(BaseSettings):
    """
    Settings for the Tutor Portal.

    Please do not modify this file directly.
    Instead, create a .env file in the root directory of the project
    and specify the settings you would like to change there.
    For example, if you would like to keep the stored tokens in redis, add the
    following lines to the .env file:
    - STORAGE_BACKEND=redis
    - USE_REDIS=True

    Some settings are required to be set in the .env file, such as:
    - SECRET_KEY

    The secret key signs the portal's visitor cookie and should never be pushed
    to GitHub, so it needs to be set as an environment variable.

    SUMMARY:
    - Override settings (if needed) using a .env file
    - Never push the .env file to GitHub (it should be in .gitignore)
    - API_BASE_URL points to the tutoring REST backend
    """

    # Application settings
    app_name: str = "Tutor Portal"
    app_version: str = "0.1.0"

    # Local vs production settings
    local: bool = True # Default to local development

    # REST backend settings
    api_base_url: str = "http://localhost:5000/api"
    request_timeout_seconds: Optional[float] = None # None waits as long as the transport does

    # Chat settings
    chat_poll_interval_seconds: float = 3.0
    user_search_debounce_seconds: float = 0.3
    user_search_min_length: int = 2

    # Storage settings ('memory', 'file' or 'redis')
    storage_backend: str = "memory"
    storage_path: str = ".tutor_portal"

    # Redis settings
    use_redis: bool = False # Default to not using Redis, change this to True if you have a Redis server set up
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_password: Optional[str] = None

    # Portal session settings
    secret_key: str
    session_expire_minutes: int = 60
    https_enabled: bool = True

    # Rate limiting
    rate_limit_enabled: bool = True
    login_rate_limit: str = "10/minute"

    # Logs settings
    logs_dir: str = "logs"

    # Load settings from .env file
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

@lru_cache() # Cache settings to avoid reading .env file multiple times
def get_settings():
    """
    Use this function as a dependency to get the settings object.
    Dependency injection will make it easier to test the portal with different settings, simply inject a different settings object.
    """
    return Settings()
