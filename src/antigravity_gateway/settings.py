from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

CLOUDCODE_BASE_URL = "https://daily-cloudcode-pa.sandbox.googleapis.com"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    app_env: str = "dev"
    log_level: str = "INFO"
    host: str = Field(default="127.0.0.1", validation_alias="HOST")
    port: int = Field(default=8045, validation_alias="PORT")

    api_url: str = Field(
        default=f"{CLOUDCODE_BASE_URL}/v1internal:streamGenerateContent?alt=sse",
        validation_alias="API_URL",
    )
    models_url: str = Field(
        default=f"{CLOUDCODE_BASE_URL}/v1internal:fetchAvailableModels",
        validation_alias="MODELS_URL",
    )
    api_host: str = Field(
        default="daily-cloudcode-pa.sandbox.googleapis.com", validation_alias="API_HOST"
    )
    user_agent: str = Field(
        default="antigravity/1.11.3 windows/amd64", validation_alias="USER_AGENT"
    )
    upstream_timeout_seconds: int = Field(default=300, validation_alias="UPSTREAM_TIMEOUT_SECONDS")

    default_temperature: float = Field(default=1.0, validation_alias="DEFAULT_TEMPERATURE")
    default_top_p: float = Field(default=0.85, validation_alias="DEFAULT_TOP_P")
    default_top_k: int = Field(default=50, validation_alias="DEFAULT_TOP_K")
    default_max_tokens: int = Field(default=8096, validation_alias="DEFAULT_MAX_TOKENS")
    system_instruction: str = Field(default="", validation_alias="SYSTEM_INSTRUCTION")

    max_request_size: int = Field(default=50 * 1024 * 1024, validation_alias="MAX_REQUEST_SIZE")
    api_key: str | None = Field(default=None, validation_alias="API_KEY")

    accounts_file: str = Field(default="data/accounts.json", validation_alias="ACCOUNTS_FILE")
    oauth_token_url: str = Field(
        default="https://oauth2.googleapis.com/token", validation_alias="OAUTH_TOKEN_URL"
    )
    oauth_client_id: str | None = Field(default=None, validation_alias="OAUTH_CLIENT_ID")
    oauth_client_secret: str | None = Field(default=None, validation_alias="OAUTH_CLIENT_SECRET")

    @field_validator("api_key", "oauth_client_id", "oauth_client_secret")
    @classmethod
    def _blank_to_none(cls, value: str | None) -> str | None:
        if value is None or not value.strip():
            return None
        return value.strip()

    @field_validator("default_top_p")
    @classmethod
    def _top_p_range(cls, value: float) -> float:
        if not 0 < value <= 1:
            raise ValueError("DEFAULT_TOP_P must be in (0, 1]")
        return value

    @field_validator("default_top_k", "default_max_tokens", "max_request_size")
    @classmethod
    def _positive(cls, value: int) -> int:
        if value < 1:
            raise ValueError("value must be >= 1")
        return value


@lru_cache
def get_settings() -> Settings:
    return Settings()
