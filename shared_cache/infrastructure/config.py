from __future__ import annotations

import os
import sys
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_ENGINE = "shared_cache.infrastructure.memory_store:get_shared_store"


def get_env_int(
    env_name: str,
    default_value: int,
    *,
    min_value: Optional[int] = None,
    max_value: Optional[int] = None,
) -> int:
    raw_value = os.getenv(env_name)
    if raw_value is None:
        value = default_value
    else:
        try:
            value = int(raw_value)
        except ValueError as exc:
            raise ValueError(
                f"{env_name} must be an integer, got {raw_value!r}"
            ) from exc

    if min_value is not None and value < min_value:
        raise ValueError(f"{env_name} must be >= {min_value}, got {value}")
    if max_value is not None and value > max_value:
        raise ValueError(f"{env_name} must be <= {max_value}, got {value}")
    return value


def get_env_bool(env_name: str, default_value: bool) -> bool:
    raw_value = os.getenv(env_name)
    if raw_value is None:
        return default_value

    normalized = raw_value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False

    raise ValueError(f"{env_name} must be a boolean, got {raw_value!r}")


def detect_cli_mode() -> bool:
    """A process started with a script or ``-m`` module has a non-empty argv[0]."""
    argv = getattr(sys, "argv", None)
    return bool(argv and argv[0])


class Settings(BaseModel):
    model_config = ConfigDict(frozen=True)

    enabled: bool = True
    enable_cli: bool = True
    cli_mode: bool = True
    engine: str = Field(default=DEFAULT_ENGINE, min_length=1)
    max_items: int = Field(default=1000, ge=1)
    max_memory_mb: int = Field(default=100, ge=1)
    max_value_bytes: Optional[int] = Field(default=None, ge=1)
    log_level: str = "DEBUG"
    log_format: str = "text"


def load_settings() -> Settings:
    max_memory_mb = get_env_int("SHARED_CACHE_MAX_MEMORY_MB", 100, min_value=1)
    max_memory_bytes = max_memory_mb * 1024 * 1024

    return Settings(
        enabled=get_env_bool("SHARED_CACHE_ENABLED", True),
        enable_cli=get_env_bool("SHARED_CACHE_ENABLE_CLI", True),
        cli_mode=get_env_bool("SHARED_CACHE_CLI_MODE", detect_cli_mode()),
        engine=os.getenv("SHARED_CACHE_ENGINE", DEFAULT_ENGINE),
        max_items=get_env_int("SHARED_CACHE_MAX_ITEMS", 1000, min_value=1),
        max_memory_mb=max_memory_mb,
        max_value_bytes=get_env_int(
            "SHARED_CACHE_MAX_VALUE_BYTES",
            max_memory_bytes,
            min_value=1,
            max_value=max_memory_bytes,
        ),
        log_level=os.getenv("SHARED_CACHE_LOG_LEVEL", "DEBUG").upper(),
        log_format=os.getenv("SHARED_CACHE_LOG_FORMAT", "text"),
    )
