from __future__ import annotations

import os
from typing import Any, Literal

from dotenv import find_dotenv, load_dotenv
from pydantic import BaseModel, ConfigDict, Field

ENV_FILE = find_dotenv(usecwd=True)
ENV_PREFIX = "REPO_TO_TEXT_"

Strategy = Literal["remote", "clone", "local"]
LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR"]


class Settings(BaseModel):
    """Configuration settings for the repo_to_text package."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    github_api_url: str = Field(
        default="https://api.github.com",
        description="Base URL of the GitHub REST API.",
    )
    user_agent: str = Field(
        default="Repository-To-Text-App",
        description="User-Agent header sent to GitHub.",
    )
    strategy: Strategy = Field(default="remote", description="Acquisition strategy.")
    http_timeout: float = Field(default=30.0, gt=0, description="HTTP timeout in seconds.")

    host: str = Field(default="127.0.0.1", description="Service bind address.")
    port: int = Field(default=8000, ge=1, le=65535, description="Service port.")

    command: Literal["convert", "serve"] = Field(default="convert", description="CLI command.")
    source: str = Field(default="", description="Repository reference or local directory.")
    log_file: str = Field(default="", description="Log file path.")
    log_level: LogLevel = Field(default="INFO", description="Minimum log level.")
    output: str = Field(default="", description="Output file for the artifact.")
    server: str = Field(default="", description="Base URL of a running repo-to-text service.")

    @classmethod
    def from_env(cls, **overrides: Any) -> Settings:  # noqa: ANN401
        """Build settings from `REPO_TO_TEXT_*` environment variables and a `.env` file.

        Keyword overrides win over the environment; overrides that are `None` are ignored.

        Returns:
            Settings: the merged configuration.
        """
        if ENV_FILE:
            load_dotenv(ENV_FILE, override=False)
        values: dict[str, Any] = {}
        for name in cls.model_fields:
            raw = os.environ.get(f"{ENV_PREFIX}{name.upper()}")
            if raw is not None:
                values[name] = raw
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)
