"""Application settings and configuration (Pydantic v2)."""
from typing import List, Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings."""

    # Database (Docker uses a Postgres DSN, local runs fall back to SQLite)
    database_url: str = Field(
        default="sqlite:///./student_records.db",
        description="SQLAlchemy database URL",
    )

    # Session tokens
    jwt_secret_key: str = Field(
        default="your-super-secret-jwt-key-change-this-in-production",
    )
    jwt_algorithm: str = Field(default="HS256")
    token_expire_hours: int = Field(default=24)
    token_format: Literal["jwt", "opaque"] = Field(default="jwt")

    # Credentials
    credential_backend: Literal["hashed", "fixed"] = Field(default="hashed")
    password_pepper: str = Field(default="StudentRecordsPortal")

    # Seeded admin user (hashed backend)
    admin_user: str = Field(default="admin")
    admin_pass: str = Field(default="admin123")

    # Request pipeline
    require_auth: bool = Field(default=True)
    seed_sample_data: bool = Field(default=True)
    cors_origins: List[str] = Field(default=["http://localhost:5173"])

    log_level: str = Field(default="INFO")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_prefix="",
    )


# Global settings instance
settings = Settings()
