"""Configuration settings for U-Ask chatbot Playwright tests."""

import json
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Configuration settings loaded from environment variables or JSON file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )

    # Target
    base_url: str = Field(
        default="https://ask.u.ae",
        description="Origin of the chatbot; the entry URL is <base_url>/<language>/",
    )
    default_language: Literal["en", "ar"] = Field(
        default="en",
        description="Language the chatbot fixture navigates to",
    )

    # Browser settings
    headless: bool = Field(
        default=True,
        description="Run browser in headless mode",
    )
    browser: Literal["chromium", "firefox", "webkit"] = Field(
        default="chromium",
        description="Browser to use for testing",
    )
    viewport_width: int = Field(default=1920, description="Browser viewport width (px)")
    viewport_height: int = Field(default=1080, description="Browser viewport height (px)")
    locale: str = Field(default="en-US", description="Browser context locale")
    timezone_id: str = Field(default="Asia/Dubai", description="Browser context timezone")

    # Timeouts (ms)
    timeout: int = Field(
        default=15000,
        description="Default timeout for actions (ms)",
    )
    expect_timeout: int = Field(
        default=10000,
        description="Default timeout for expect operations (ms)",
    )
    navigation_timeout: int = Field(
        default=60000,
        description="Timeout for loading the entry page (ms)",
    )
    response_timeout: int = Field(
        default=60000,
        description="How long to wait for a new assistant message (ms)",
    )
    response_poll_interval: int = Field(
        default=500,
        description="Interval between assistant message count checks (ms)",
    )
    settle_delay: int = Field(
        default=2000,
        description="Pause after navigation and after a response appears (ms)",
    )
    ready_timeout: int = Field(
        default=10000,
        description="How long the chat input may take to become visible (ms)",
    )

    # Anti-bot challenge
    challenge_timeout: int = Field(
        default=120000,
        description="Ceiling for waiting on a challenge to be solved (ms)",
    )
    challenge_poll_interval: int = Field(
        default=2000,
        description="Interval between challenge presence checks (ms)",
    )
    challenge_detect_delay: int = Field(
        default=2000,
        description="How long send_message watches for a challenge when not waiting for a reply (ms)",
    )
    challenge_mode: Literal["manual", "wait", "skip"] = Field(
        default="manual",
        description="How a detected challenge is handled: prompt the operator, wait silently, or give up",
    )
    skip_captcha: bool = Field(
        default=False,
        description="Skip tests that are known to trigger the challenge",
    )
    run_dangerous_tests: bool = Field(
        default=False,
        description="Enable payloads that always trigger the challenge",
    )
    run_e2e: bool = Field(
        default=False,
        description="Run live browser scenarios against the target",
    )

    # Output locations
    screenshots_dir: str = Field(
        default="./screenshots",
        description="Directory for diagnostic screenshots",
    )
    reports_dir: str = Field(
        default="./reports",
        description="Directory for test reports",
    )
    logs_dir: str = Field(
        default="./logs",
        description="Directory for log files",
    )
    log_level: str = Field(
        default="INFO",
        description="Log level for the uask_tests logger",
    )
    fixtures_dir: Optional[str] = Field(
        default=None,
        description="Directory containing test fixtures (defaults to ./fixtures relative to package)",
    )

    # LLM settings
    openai_api_key: str = Field(
        default="",
        description="API key for the language model; LLM checks degrade when empty",
    )
    llm_model: str = Field(
        default="gpt-4",
        description="Model used for hallucination checks and translation",
    )
    llm_url: Optional[str] = Field(
        default=None,
        description="Base URL of an OpenAI-compatible endpoint",
    )

    @model_validator(mode='after')
    def validate_challenge_settings(self):
        """Validate that the challenge poll interval fits inside its ceiling."""
        if self.challenge_poll_interval <= 0:
            raise ValueError("CHALLENGE_POLL_INTERVAL must be positive")
        if self.challenge_poll_interval > self.challenge_timeout:
            raise ValueError(
                "CHALLENGE_POLL_INTERVAL must not exceed CHALLENGE_TIMEOUT"
            )
        return self

    def entry_url(self, language: str) -> str:
        """Locale-scoped entry URL of the chatbot."""
        return f"{self.base_url.rstrip('/')}/{language}/"

    @property
    def llm_configured(self) -> bool:
        return bool(self.openai_api_key)

    @property
    def reports_path(self) -> Path:
        """Path object for reports directory."""
        return Path(self.reports_dir)

    @property
    def screenshots_path(self) -> Path:
        return Path(self.screenshots_dir)

    @property
    def logs_path(self) -> Path:
        return Path(self.logs_dir)

    @property
    def fixtures_path(self) -> Path:
        """Get the path to the fixtures directory."""
        if self.fixtures_dir:
            return Path(self.fixtures_dir)
        return Path(__file__).parent / "fixtures"

    @classmethod
    def from_json(cls, json_path: Path) -> "Settings":
        """Load settings from a JSON config file.

        JSON keys use snake_case matching the field names. Values from the
        file win over environment variables; fields it omits still come from
        the environment and .env.
        """
        with open(json_path) as f:
            config_data = json.load(f)
        return cls(**config_data)


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the current settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def set_settings(settings: Optional[Settings]) -> None:
    """Set the global settings instance."""
    global _settings
    _settings = settings


def load_settings_from_json(json_path: Path) -> Settings:
    """Load settings from JSON file and set as global instance."""
    global _settings
    _settings = Settings.from_json(json_path)
    return _settings
