"""Application configuration models and loader utilities."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal, cast

from dotenv import dotenv_values
from pydantic import BaseModel, Field, field_validator


class StoreSettings(BaseModel):
    """Settings selecting and configuring the message store."""

    backend: Literal["sqlite", "postgrest"] = Field(
        default="sqlite", description="Message store implementation"
    )
    db_path: Path = Field(
        default=Path("./support_threads.db"), description="SQLite database path"
    )
    base_url: str | None = Field(
        default=None, description="Project URL of the hosted Postgres REST API"
    )
    api_key: str | None = Field(default=None, description="Service or anon API key")
    timeout_seconds: float = Field(
        default=10.0, gt=0, description="Request timeout for remote store calls"
    )


class ThreadSettings(BaseModel):
    """Settings controlling thread paging and list assembly."""

    initial_visible_count: int = Field(
        default=3, ge=1, description="Messages requested for the first page"
    )
    page_size: int = Field(
        default=25, ge=1, description="Messages requested for each older page"
    )
    seed_sample_size: int = Field(
        default=5, ge=1, description="Recent messages sampled to build a thread seed"
    )
    remaining_ceiling: int = Field(
        default=500,
        ge=0,
        description="Largest remaining count still shown as a number",
    )
    window_days: int | None = Field(
        default=None,
        ge=1,
        description="Only consider messages newer than this many days",
    )
    enable_quoted_extraction: bool = Field(
        default=False, description="Split quoted history into separate cards"
    )
    cache_ttl_seconds: int = Field(
        default=120, ge=1, description="Idle lifetime of a cached conversation"
    )


class AgentSettings(BaseModel):
    """Known agent identities used to frame message direction."""

    current_user_email: str | None = Field(
        default=None, description="Email of the viewing agent"
    )
    emails: list[str] = Field(default_factory=list, description="Agent emails")
    phones: list[str] = Field(default_factory=list, description="Agent phones")
    domains: list[str] = Field(
        default_factory=list, description="Domains whose senders are agents"
    )

    @field_validator("emails", "phones", "domains", mode="before")
    @classmethod
    def _split_csv(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return value


class LoggingSettings(BaseModel):
    """Logging preferences."""

    level: str = Field(default="INFO", description="Root logging level")
    structured: bool = Field(
        default=False, description="Toggle JSON structured logging"
    )


class AppSettings(BaseModel):
    """Aggregated application configuration."""

    store: StoreSettings = Field(default_factory=StoreSettings)
    threads: ThreadSettings = Field(default_factory=ThreadSettings)
    agents: AgentSettings = Field(default_factory=AgentSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


ENV_PREFIX = "SUPPORT_THREADS_"


def _normalize_key(raw_key: str) -> list[str]:
    """Convert an environment variable key into a nested attribute path."""
    trimmed = raw_key.removeprefix(ENV_PREFIX)
    return [segment.lower() for segment in trimmed.split("__") if segment]


def _merge_into_tree(tree: dict[str, Any], path: list[str], value: Any) -> None:
    """Assign a value to a nested dictionary given a path."""
    cursor = tree
    for segment in path[:-1]:
        next_node = cursor.setdefault(segment, {})
        cursor = cast(dict[str, Any], next_node)
    cursor[path[-1]] = value


def _collect_env_values(
    env_file: Path | str | None, *, include_environment: bool = True
) -> dict[str, Any]:
    """Load configuration values from environment variables and optional file."""
    collected: dict[str, Any] = {}

    file_values = {}
    if env_file:
        env_path = Path(env_file)
        if env_path.is_file():
            file_values = {
                key: value
                for key, value in dotenv_values(env_path).items()
                if key and key.startswith(ENV_PREFIX)
            }

    env_values = {}
    if include_environment:
        env_values = {
            key: value
            for key, value in os.environ.items()
            if key.startswith(ENV_PREFIX)
        }

    combined: dict[str, Any] = {**file_values, **env_values}

    for key, value in combined.items():
        path = _normalize_key(key)
        if not path:
            continue
        normalized_value: Any = value
        if isinstance(value, str) and value == "":
            normalized_value = None
        elif isinstance(value, str):
            lowercase_value = value.lower()
            if lowercase_value == "true":
                normalized_value = True
            elif lowercase_value == "false":
                normalized_value = False
        _merge_into_tree(collected, path, normalized_value)

    return collected


@lru_cache(maxsize=1)
def load_app_settings(
    env_file: Path | str | None = None,
    *,
    include_environment: bool = True,
    **overrides: Any,
) -> AppSettings:
    """Load application settings, applying env files and overrides."""
    collected = _collect_env_values(env_file, include_environment=include_environment)
    if overrides:
        collected.update(overrides)
    return AppSettings.model_validate(collected)


__all__ = [
    "AgentSettings",
    "AppSettings",
    "LoggingSettings",
    "StoreSettings",
    "ThreadSettings",
    "load_app_settings",
]
