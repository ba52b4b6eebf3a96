"""Runtime configuration, read from the environment (and a local .env file if present)."""

import logging
import os
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


class Settings(BaseModel):
    database_url: str = "sqlite:///./castle.db"
    openai_api_key: Optional[str] = None
    llm_model: str = "gpt-4"
    llm_timeout: float = Field(default=20.0, gt=0)
    api_url: str = "http://localhost:8000"
    token_ttl_minutes: int = Field(default=60, ge=1)
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        """Only override defaults for the variables that are actually set."""
        env_names = {
            "database_url": "CASTLE_DATABASE_URL",
            "openai_api_key": "OPENAI_API_KEY",
            "llm_model": "CASTLE_LLM_MODEL",
            "llm_timeout": "CASTLE_LLM_TIMEOUT",
            "api_url": "CASTLE_API_URL",
            "token_ttl_minutes": "CASTLE_TOKEN_TTL_MINUTES",
            "log_level": "CASTLE_LOG_LEVEL",
        }
        values = {
            field_name: os.environ[env_name]
            for field_name, env_name in env_names.items()
            if os.environ.get(env_name)
        }
        return cls(**values)


@lru_cache
def get_settings() -> Settings:
    load_dotenv()
    return Settings.from_env()


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)
