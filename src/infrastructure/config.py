import os

from dotenv import load_dotenv
from pydantic import BaseModel, Field

from src.domain.exceptions import ConfigurationError


class Settings(BaseModel):
    """Process settings read from the environment (and a .env file, if present)."""
    database_url: str = Field(..., description="Async SQLAlchemy URL, e.g. postgresql+asyncpg://...")
    log_level: str = Field("INFO", description="Root logging level")
    sql_echo: bool = Field(False, description="Log every SQL statement")


def load_settings() -> Settings:
    load_dotenv()

    database_url = os.getenv("DATABASE_URL")
    if not database_url:
        raise ConfigurationError("DATABASE_URL is not set in the environment.")

    return Settings(
        database_url=database_url,
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        sql_echo=os.getenv("SQL_ECHO", "false").lower() in ("1", "true", "yes"),
    )
