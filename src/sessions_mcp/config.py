"""Configuration management for Sessions MCP."""

from __future__ import annotations

from functools import lru_cache
from typing import Annotated
from pathlib import Path
import os

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class SessionsSettings(BaseSettings):
    """Runtime configuration sourced from environment variables and optional .env file."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    chroma_persist_path: Path = Field(
        default=Path("./storage/chroma"), validation_alias="CHROMA_PERSIST_PATH"
    )
    catalog_paths: Annotated[tuple[Path, ...], NoDecode] = Field(
        default=(Path("catalog"),), validation_alias="SESSIONS_CATALOG_PATHS"
    )
    log_level: str = Field(default="INFO", validation_alias="SESSIONS_LOG_LEVEL")
    max_session_goals: int = Field(default=4, validation_alias="SESSIONS_MAX_GOALS")
    device_origin: str = Field(default="Watch", validation_alias="SESSIONS_DEVICE_ORIGIN")

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        normalized = value.strip().upper()
        if normalized not in {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}:
            raise ValueError(
                "SESSIONS_LOG_LEVEL must be one of CRITICAL, ERROR, WARNING, INFO, DEBUG"
            )
        return normalized

    @field_validator("catalog_paths", mode="before")
    @classmethod
    def _parse_catalog_paths(cls, value):
        if value is None or value == "":
            return (Path("catalog"),)
        if isinstance(value, (list, tuple)):
            return tuple(Path(str(item)) for item in value)
        if isinstance(value, str):
            parts = [part.strip() for part in value.split(os.pathsep) if part.strip()]
            return tuple(Path(part) for part in parts) or (Path("catalog"),)
        raise TypeError("SESSIONS_CATALOG_PATHS must be a list of paths or a path-separated string")

    @field_validator("max_session_goals")
    @classmethod
    def _validate_max_session_goals(cls, value: int) -> int:
        if value < 1:
            raise ValueError("SESSIONS_MAX_GOALS must be >= 1")
        return value

    @field_validator("device_origin")
    @classmethod
    def _validate_device_origin(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError("SESSIONS_DEVICE_ORIGIN must not be empty")
        return normalized


@lru_cache(maxsize=1)
def get_settings() -> SessionsSettings:
    """Return cached settings instance."""

    settings = SessionsSettings()
    settings.chroma_persist_path = settings.chroma_persist_path.expanduser().resolve()
    settings.catalog_paths = tuple(path.expanduser().resolve() for path in settings.catalog_paths)
    return settings


__all__ = ["SessionsSettings", "get_settings"]
