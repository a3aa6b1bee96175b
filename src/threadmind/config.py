"""Configuration settings for the application."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Pydantic settings class for the application."""

    # Define the settings with default values and types
    # These will be loaded from environment variables or a .env file if not provided
    API_PORT: int = 8000
    DEBUG: bool = False
    LOG_LEVEL: str = "info"  # Options: debug, info, warning, error, critical

    # LLM Configuration
    PLANNER: str = "openai"  # Options: openai, anthropic
    OPENAI_API_KEY: str | None = None
    OPENAI_MODEL: str = "gpt-4o"
    ANTHROPIC_API_KEY: str | None = None
    ANTHROPIC_MODEL: str = "claude-3-5-sonnet-latest"

    # Orchestration budgets
    MAX_STEPS: int = 10
    CANVAS_MAX_STEPS: int = 8

    # Network timeouts (seconds)
    HTTP_TIMEOUT: float = 30.0
    RESEARCH_TIMEOUT: float = 300.0

    # Slack
    SLACK_BOT_TOKEN: str | None = None
    DOCUMENT_STORE: str = "slack"  # Options: slack, memory

    # Tool API Keys
    JINA_API_KEY: str | None = None
    PERPLEXITY_API_KEY: str | None = None
    PERPLEXITY_MODEL: str = "sonar-deep-research"

    class Config:
        """Configuration for Pydantic settings."""

        # Load environment variables from a .env file
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()


def current_settings() -> Settings:
    """
    Re-read the environment and return fresh settings.

    Tools call this at invocation time so that credentials added or removed after startup are
    picked up without a restart.
    """
    return Settings()
