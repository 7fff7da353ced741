from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    api_base_url: str = "http://localhost:8000/api/v1"
    api_timeout_seconds: float = 12.0
    api_max_retry_attempts: int = 3
    api_retry_base_delay_seconds: float = 0.25
    api_retry_max_delay_seconds: float = 2.0
    oauth_success_redirect_delay_seconds: float = 1.5
    oauth_error_redirect_delay_seconds: float = 3.0
    storage_backend: str = "memory"  # memory | file
    storage_dir: str = ".portal_storage"
    storage_max_browsers: int = 10_000
    browser_cookie_name: str = "portal_browser_id"
    cors_allow_origins: list[str] = ["http://localhost:3000"]
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )

    @field_validator("cors_allow_origins")
    @classmethod
    def _exact_origins_only(cls, value: list[str]) -> list[str]:
        # The browser-id cookie is a credential, so origins must be listed explicitly.
        if "*" in value:
            raise ValueError("cors_allow_origins cannot contain '*' when credentials are allowed")
        return value


settings = Settings()
