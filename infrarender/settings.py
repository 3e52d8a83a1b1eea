from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .core.errors import DEFAULT_REDACTION_MARKER


class RendererSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="INFRARENDER_", case_sensitive=False)

    max_workers: int = Field(default=4, ge=1)
    validate_output: bool = True
    redaction_marker: str = Field(default=DEFAULT_REDACTION_MARKER, min_length=1)


@lru_cache(maxsize=1)
def get_settings() -> RendererSettings:
    return RendererSettings()
