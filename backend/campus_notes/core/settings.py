from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path
from typing import List

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, DotEnvSettingsSource, EnvSettingsSource, SettingsConfigDict


_COMMA_SEPARATED_FIELDS = {"allow_origins", "allowed_mime_types"}

DEFAULT_ALLOWED_MIME_TYPES = [
    "application/pdf",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "application/vnd.ms-powerpoint",
    "application/vnd.openxmlformats-officedocument.presentationml.presentation",
    "text/plain",
    "image/jpeg",
    "image/png",
    "image/gif",
]


class _CommaSeparatedListsMixin:
    """List settings may be given comma-separated instead of as strict JSON."""

    def decode_complex_value(self, field_name, field, value):  # type: ignore[override]
        try:
            return super().decode_complex_value(field_name, field, value)
        except json.JSONDecodeError:
            if field_name in _COMMA_SEPARATED_FIELDS:
                return value
            raise


class _EnvSource(_CommaSeparatedListsMixin, EnvSettingsSource):
    pass


class _DotEnvSource(_CommaSeparatedListsMixin, DotEnvSettingsSource):
    pass


def _split_csv(value: str | List[str] | None) -> List[str] | None:
    if isinstance(value, list):
        return [item.strip() for item in value if str(item).strip()]
    if isinstance(value, str) and value.strip():
        return [item.strip() for item in value.split(",") if item.strip()]
    return None


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    project_name: str = "Campus Notes API"
    project_version: str = "1.0.0"
    environment: str = Field(
        default="development",
        description="Deployment environment name",
        validation_alias=AliasChoices("ENV", "ENVIRONMENT"),
    )
    git_sha: str | None = Field(default=None, description="Git SHA for /version")
    log_level: str = Field(default="INFO", description="Logging level")

    # Database
    database_url: str = Field(
        default="sqlite:///./campus_notes.db",
        description="SQLAlchemy database URL",
    )

    # Auth / JWT
    jwt_secret: str = Field(default="change_me", description="JWT signing secret")
    algorithm: str = Field(default="HS256", description="JWT signing algorithm")
    access_token_expire_minutes: int = Field(default=60 * 24 * 7, description="Access token expiry in minutes")

    # CORS
    allow_origins: List[str] = Field(
        default_factory=lambda: [
            "http://localhost",
            "http://localhost:3000",
            "http://localhost:5173",
        ]
    )

    # Storage
    uploads_dir: str = Field(
        default="./uploads",
        description="Directory for uploaded study material",
        validation_alias=AliasChoices("UPLOAD_DIR", "UPLOADS_DIR"),
    )
    max_file_size_mb: int = Field(
        default=10,
        description="Largest accepted upload in megabytes",
        validation_alias=AliasChoices("MAX_FILE_SIZE_MB", "MAX_FILE_SIZE"),
    )
    allowed_mime_types: List[str] = Field(
        default_factory=lambda: list(DEFAULT_ALLOWED_MIME_TYPES),
        description="Mime types accepted by the file store",
    )

    # Email delivery
    app_base_url: str = Field(
        default="http://localhost:3000",
        description="Base URL for portal links in emails",
        validation_alias=AliasChoices("APP_BASE_URL", "CLIENT_URL", "FRONTEND_BASE_URL"),
    )
    email_provider: str = Field(
        default="disabled",
        description="Email provider: resend, postmark, smtp, disabled",
        validation_alias=AliasChoices("EMAIL_PROVIDER"),
    )
    email_api_key: str | None = Field(
        default=None,
        description="API key for Resend/Postmark",
        validation_alias=AliasChoices("EMAIL_API_KEY"),
    )
    email_from: str | None = Field(
        default=None,
        description="From address for outbound email",
        validation_alias=AliasChoices("EMAIL_FROM"),
    )
    smtp_host: str | None = Field(default=None, description="SMTP host")
    smtp_port: int = Field(default=587, description="SMTP port")
    smtp_username: str | None = Field(default=None, description="SMTP username")
    smtp_password: str | None = Field(default=None, description="SMTP password")
    smtp_use_tls: bool = Field(default=True, description="Use TLS for SMTP")

    # Notification fan-out
    notification_workers: int = Field(default=4, description="Worker threads delivering notifications")
    notification_max_pending: int = Field(
        default=100,
        description="Fan-out jobs allowed to be queued or running before new ones are dropped",
    )

    # DB pool tuning (non-SQLite)
    db_pool_size: int = Field(default=5, description="Base DB connection pool size")
    db_max_overflow: int = Field(default=10, description="Additional DB connections beyond pool size")
    db_pool_timeout: int = Field(default=30, description="Seconds to wait for a DB connection")
    db_pool_recycle: int = Field(default=1800, description="Recycle DB connections after N seconds")

    @field_validator("allow_origins", mode="before")
    @classmethod
    def parse_allow_origins(cls, value: str | List[str]) -> List[str]:
        return _split_csv(value) or ["http://localhost", "http://localhost:3000"]

    @field_validator("allowed_mime_types", mode="before")
    @classmethod
    def parse_allowed_mime_types(cls, value: str | List[str]) -> List[str]:
        parsed = _split_csv(value)
        if not parsed:
            return list(DEFAULT_ALLOWED_MIME_TYPES)
        return [item.lower() for item in parsed]

    @property
    def max_file_size_bytes(self) -> int:
        return max(self.max_file_size_mb, 1) * 1024 * 1024

    @property
    def is_production(self) -> bool:
        return self.environment.lower() in ("production", "prod")

    def production_problems(self) -> List[str]:
        """Settings that must not reach a production deployment."""
        if not self.is_production:
            return []
        problems = []
        if any(origin.strip() == "*" for origin in self.allow_origins):
            problems.append("ALLOW_ORIGINS cannot include '*' in production")
        if self.jwt_secret.startswith("change_me"):
            problems.append("JWT_SECRET must be set in production")
        if self.email_provider != "disabled" and not self.email_from:
            problems.append("EMAIL_FROM must be set when EMAIL_PROVIDER is enabled")
        return problems

    def ensure_uploads_dir(self) -> Path:
        uploads_path = Path(self.uploads_dir).expanduser().resolve()
        uploads_path.mkdir(parents=True, exist_ok=True)
        return uploads_path

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        return (
            init_settings,
            _EnvSource(settings_cls),
            _DotEnvSource(settings_cls),
            file_secret_settings,
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    settings = Settings()
    settings.ensure_uploads_dir()
    return settings


settings = get_settings()
