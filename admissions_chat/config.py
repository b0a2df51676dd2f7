"""Runtime settings read from the environment, ``.env`` and ``.env.local``."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Literal

from dotenv import load_dotenv
from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


_DEFAULT_DATABASE_URL = "sqlite+aiosqlite:///./admissions.db"


def _load_env_files() -> None:
    """Populate ``os.environ`` from dotenv files without overriding real variables.

    ``.env.local`` holds developer overrides and is ignored under pytest.
    """

    candidates = [Path(".env")]
    if "PYTEST_CURRENT_TEST" not in os.environ:
        candidates.append(Path(".env.local"))
    for path in candidates:
        if path.exists():
            load_dotenv(path, override=False)


_load_env_files()


class Settings(BaseSettings):
    """Typed view over the process environment."""

    model_config = SettingsConfigDict(extra="ignore")

    env: Literal["dev", "staging", "prod", "test"] = Field(default="dev", alias="ENV")
    jwt_secret: str = Field(..., alias="JWT_SECRET")
    jwt_aud: str | None = Field(default=None, alias="JWT_AUD")

    database_url: str = Field(default=_DEFAULT_DATABASE_URL, alias="DATABASE_URL")
    database_echo: bool = Field(default=False, alias="DATABASE_ECHO")

    # language models
    llm_provider: Literal["openai", "cerebras"] = Field(default="openai", alias="LLM_PROVIDER")
    llm_timeout_s: float = Field(default=60.0, alias="LLM_TIMEOUT_S", gt=0)

    openai_base_url: str | None = Field(default="https://api.openai.com/v1", alias="OPENAI_BASE_URL")
    openai_api_key: str | None = Field(default=None, alias="OPENAI_API_KEY")
    openai_model: str | None = Field(default="gpt-4o-mini", alias="OPENAI_MODEL")

    cerebras_base_url: str | None = Field(default=None, alias="CEREBRAS_BASE_URL")
    cerebras_api_key: str | None = Field(default=None, alias="CEREBRAS_API_KEY")
    cerebras_model: str | None = Field(default=None, alias="CEREBRAS_MODEL")

    # background turns
    redis_url: str | None = Field(default=None, alias="REDIS_URL")
    queue_mode: Literal["direct", "redis"] = Field(default="direct", alias="QUEUE_MODE")
    job_timeout_s: int = Field(default=120, alias="JOB_TIMEOUT_S", gt=0)
    turn_timeout_s: float | None = Field(
        default=None,
        alias="TURN_TIMEOUT_S",
        validation_alias=AliasChoices("TURN_TIMEOUT_S", "AI_TURN_TIMEOUT_S"),
    )

    college_name: str = Field(default="Havana College", alias="COLLEGE_NAME")

    trace_mode: bool = Field(default=False, alias="TRACE_MODE")
    trace_sampling: float = Field(default=1.0, alias="TRACE_SAMPLING")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    @field_validator("database_url", mode="before")
    @classmethod
    def _default_blank_database_url(cls, value: str | None) -> str:
        return (value or "").strip() or _DEFAULT_DATABASE_URL

    @field_validator("turn_timeout_s", mode="before")
    @classmethod
    def _unset_blank_turn_timeout(cls, value: object) -> object:
        return None if isinstance(value, str) and not value.strip() else value


settings = Settings()
