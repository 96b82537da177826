"""Configuration for the Deep PR Reviewer."""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # App
    environment: str = Field(default="development")
    debug: bool = Field(default=True)
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8080)

    # LLM - OpenRouter (multi-provider gateway)
    openrouter_api_key: Optional[str] = Field(default=None)
    review_model: str = Field(default="claude-sonnet-4")
    model_temperature: float = Field(default=0.0)

    # GitHub - a plain token (Actions) or App credentials
    github_token: Optional[str] = Field(default=None)
    github_app_id: Optional[str] = Field(default=None)
    github_private_key: Optional[str] = Field(default=None)
    github_installation_id: Optional[str] = Field(default=None)

    # Default repository for "#123" shorthand, "owner/repo"
    github_repository: Optional[str] = Field(default=None)

    # Review scope
    max_files_per_review: int = Field(default=50)
    chunk_token_budget: int = Field(default=8000)
    diff_lines_per_chunk: int = Field(default=100)
    review_language: str = Field(default="en")

    # Orchestration ceilings
    max_tool_calls: int = Field(default=60)
    max_tokens_per_run: int = Field(default=180_000)
    max_tool_timeouts: int = Field(default=5)
    max_parallel_tools: int = Field(default=4)

    # Timeouts (seconds)
    tool_timeout_seconds: float = Field(default=60.0)
    model_timeout_seconds: float = Field(default=180.0)
    run_deadline_seconds: float = Field(default=1200.0)

    # Tool output
    max_tool_output_chars: int = Field(default=40_000)

    # Linters
    install_js_dependencies: bool = Field(default=False)


settings = Settings()
