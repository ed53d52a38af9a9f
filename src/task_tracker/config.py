"""Configuration for TaskTracker."""

from dataclasses import dataclass, field
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


@dataclass
class StatusPatterns:
    """Label patterns (case-insensitive regex fragments) per inferred status class."""

    not_started: list[str] = field(
        default_factory=lambda: [r"to\s?do", "backlog", "pending", "open", "not started"]
    )
    in_progress: list[str] = field(
        default_factory=lambda: ["progress", "review", "doing", "working"]
    )
    done: list[str] = field(
        default_factory=lambda: ["done", "complete", "resolved", "closed", "finish"]
    )


class Config(BaseSettings):
    """Application configuration."""

    model_config = SettingsConfigDict(env_prefix="TASK_TRACKER_", env_nested_delimiter="__")

    store_backend: Literal["memory", "markdown"] = Field(default="markdown")
    store_path: str = Field(default="./data")
    watch_store: bool = Field(default=True)
    status_patterns: StatusPatterns = Field(default_factory=StatusPatterns)
    host: str = Field(default="127.0.0.1")
    port: int = Field(default=8000)
