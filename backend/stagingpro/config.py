from functools import lru_cache
from typing import Annotated, Any, List, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

DEFAULT_CORS_ORIGINS = ["http://localhost:3000", "http://localhost:5173"]


class Settings(BaseSettings):
    """Runtime settings loaded from the environment or .env.

    The admin allow-list lives here rather than in code so it can be rotated
    without a rebuild.
    """

    database_url: str = "postgresql+psycopg2://postgres:postgres@db:5432/stagingpro"
    database_echo: bool = False
    admin_emails: Annotated[List[str], NoDecode] = []
    studio_contact_email: str = "info@stagingpro.studio"
    public_base_url: str = "http://localhost:8000"
    auth_jwt_secret: str = ""
    auth_jwt_audience: Optional[str] = "authenticated"
    stripe_secret_key: Optional[str] = None
    checkout_currency: str = "usd"
    openai_api_key: Optional[str] = None
    openai_vision_model: str = "gpt-4o-mini"
    resend_api_key: Optional[str] = None
    mail_from: str = "StagingPro Studio <studio@stagingpro.studio>"
    media_root: str = "./media"
    public_media_base: Optional[str] = None
    upload_endpoint: Optional[str] = None
    delivery_business_days: int = 3
    # Comma-separated in the environment
    cors_origins: Annotated[List[str], NoDecode] = DEFAULT_CORS_ORIGINS
    log_level: str = "INFO"

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    @field_validator("admin_emails", "cors_origins", mode="before")
    @classmethod
    def _split(cls, value: Any) -> List[str]:
        if isinstance(value, str):
            return [v.strip() for v in value.split(",") if v.strip()]
        return list(value or [])

    @field_validator("cors_origins")
    @classmethod
    def _default_origins(cls, value: List[str]) -> List[str]:
        return value or list(DEFAULT_CORS_ORIGINS)

    @field_validator("auth_jwt_audience", "stripe_secret_key", "openai_api_key", "resend_api_key", "upload_endpoint", mode="before")
    @classmethod
    def _blank_is_none(cls, value: Any) -> Any:
        return value or None

    @field_validator("public_base_url")
    @classmethod
    def _strip_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @field_validator("public_media_base", mode="before")
    @classmethod
    def _media_base(cls, value: Any) -> Optional[str]:
        return (value or "").rstrip("/") or None

    @field_validator("checkout_currency")
    @classmethod
    def _lower(cls, value: str) -> str:
        return value.lower()

    @field_validator("log_level")
    @classmethod
    def _upper(cls, value: str) -> str:
        return value.upper()


@lru_cache()
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()  # type: ignore[call-arg]
