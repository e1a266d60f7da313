from enum import Enum

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class StoreBackend(Enum):
    SQLALCHEMY = "sqlalchemy"
    MEMORY = "memory"


class DatabaseConfig(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="DATABASE_", env_file=".env", extra="ignore")

    url: str = "sqlite+aiosqlite:///./bloodbank.db"
    echo: bool = False
    backend: StoreBackend = StoreBackend.SQLALCHEMY
    create_schema: bool = True


class ServerConfig(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="SERVER_", env_file=".env", extra="ignore")

    host: str = "0.0.0.0"
    port: int = 8000


class AppConfig(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    bank_timezone: str = "UTC"
    log_level: str = "INFO"
    # None disables the upper bound on how far ahead a donor may book.
    max_lead_days: int | None = Field(default=None, ge=1)
    database: DatabaseConfig = Field(default_factory=lambda: DatabaseConfig())
    server: ServerConfig = Field(default_factory=lambda: ServerConfig())
