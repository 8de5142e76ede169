from enum import Enum
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class CancelPolicy(str, Enum):
    PENDING_ONLY = "pending_only"
    UNTIL_COMPLETED = "until_completed"
    UNRESTRICTED = "unrestricted"


class DatabaseSettings(BaseSettings):
    url: str = "mongodb://127.0.0.1:27017"
    name: str = "rideHailingDB"
    use_transactions: bool = False

    model_config = SettingsConfigDict(env_prefix="DATABASE_")


class AuthSettings(BaseSettings):
    jwt_secret: str
    jwt_algorithm: str = "HS256"
    token_expires_minutes: int = 60
    bcrypt_rounds: int = 10

    model_config = SettingsConfigDict(env_prefix="AUTH_")


class BookingSettings(BaseSettings):
    cancel_policy: CancelPolicy = CancelPolicy.PENDING_ONLY

    model_config = SettingsConfigDict(env_prefix="BOOKING_")


class CORSSettings(BaseSettings):
    origins: str = Field(default="*")

    model_config = SettingsConfigDict(env_prefix="CORS_")


class LogSettings(BaseSettings):
    level: str = "INFO"
    json_output: bool = False
    environment: str = "development"

    model_config = SettingsConfigDict(env_prefix="LOG_")


class Settings(BaseSettings):
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    auth: AuthSettings = Field(default_factory=AuthSettings)  # type: ignore[arg-type]
    booking: BookingSettings = Field(default_factory=BookingSettings)
    cors: CORSSettings = Field(default_factory=CORSSettings)
    log: LogSettings = Field(default_factory=LogSettings)

    model_config = SettingsConfigDict(
        env_nested_delimiter="__",
        case_sensitive=False,
    )


@lru_cache
def get_settings() -> Settings:
    return Settings()
