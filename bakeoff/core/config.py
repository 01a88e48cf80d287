from functools import lru_cache
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

ASYNC_DRIVERS = {
    "postgres": "postgresql+asyncpg",
    "postgresql": "postgresql+asyncpg",
    "sqlite": "sqlite+aiosqlite",
}


class Settings(BaseSettings):
    app_name: str = "Bake Off Predictor"
    debug: bool = False
    cors_origins: list[str] = ["*"]

    # Database; hosting providers hand out sync URLs, the engine is async
    database_url: str = "postgresql+asyncpg://localhost:5432/bake_off"

    # JWT
    secret_key: str = "change-me"
    algorithm: str = "HS256"
    access_token_expire_minutes: int = Field(default=1440, gt=0)

    # Sent with /register to create an admin account
    admin_key: str = "changeme"

    # Game rules
    star_baker_pick_limit: int = Field(default=2, gt=0)  # same baker as Star Baker, per player per season
    finalist_count: int = Field(default=3, gt=0)

    # Live updates
    event_queue_size: int = Field(default=100, gt=0)
    event_ping_seconds: float = Field(default=30.0, gt=0)

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    @field_validator("database_url")
    @classmethod
    def use_async_driver(cls, value: str) -> str:
        scheme, sep, rest = value.partition("://")
        if sep and scheme in ASYNC_DRIVERS:
            return f"{ASYNC_DRIVERS[scheme]}://{rest}"
        return value


@lru_cache()
def get_settings() -> Settings:
    return Settings()
