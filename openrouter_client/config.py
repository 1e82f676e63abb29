"""Configuration management for the OpenRouter client."""

import os
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field

from .errors import ConfigurationError

load_dotenv()


class Settings:
    """Environment settings."""

    # Gateway
    OPENROUTER_API_KEY: Optional[str] = os.getenv("OPENROUTER_API_KEY")
    OPENROUTER_BASE_URL: str = os.getenv("OPENROUTER_BASE_URL", "https://openrouter.ai/api/v1")
    OPENROUTER_DEFAULT_MODEL: str = os.getenv(
        "OPENROUTER_DEFAULT_MODEL", "deepseek/deepseek-chat-v3.1:free"
    )
    OPENROUTER_TIMEOUT: float = float(os.getenv("OPENROUTER_TIMEOUT", "100"))  # seconds

    # Attribution headers shown on the gateway's app rankings
    OPENROUTER_USER_AGENT: Optional[str] = os.getenv("OPENROUTER_USER_AGENT")
    OPENROUTER_REFERER: Optional[str] = os.getenv("OPENROUTER_REFERER")

    # Debug
    DEBUG_LOG_PAYLOADS: bool = os.getenv("DEBUG_LOG_PAYLOADS", "false").lower() == "true"
    DEBUG_LOG_MAX_LENGTH: int = int(os.getenv("DEBUG_LOG_MAX_LENGTH", "2000"))


settings = Settings()


class ClientOptions(BaseModel):
    """Immutable client configuration.

    Clients take a copy at construction, so later changes made through the
    ``with_*`` helpers never reach a client that is already running.
    """

    model_config = ConfigDict(frozen=True)

    api_key: str = ""
    base_url: str = "https://openrouter.ai/api/v1"
    default_model: str = "deepseek/deepseek-chat-v3.1:free"
    timeout: float = Field(default=100.0, gt=0)
    user_agent: Optional[str] = None
    referer: Optional[str] = None
    debug_logging: bool = False

    @classmethod
    def from_settings(cls, source: Settings = settings) -> "ClientOptions":
        """Build options from environment settings."""
        return cls(
            api_key=source.OPENROUTER_API_KEY or "",
            base_url=source.OPENROUTER_BASE_URL,
            default_model=source.OPENROUTER_DEFAULT_MODEL,
            timeout=source.OPENROUTER_TIMEOUT,
            user_agent=source.OPENROUTER_USER_AGENT,
            referer=source.OPENROUTER_REFERER,
            debug_logging=source.DEBUG_LOG_PAYLOADS,
        )

    @property
    def chat_completions_url(self) -> str:
        return f"{self.base_url.rstrip('/')}/chat/completions"

    def validate_options(self) -> None:
        """Raise ConfigurationError if a required option is blank."""
        if not self.api_key.strip():
            raise ConfigurationError("The API key must be provided in ClientOptions.api_key.")
        if not self.base_url.strip():
            raise ConfigurationError("The API endpoint must be provided in ClientOptions.base_url.")
        if not self.default_model.strip():
            raise ConfigurationError(
                "The default model must be provided in ClientOptions.default_model."
            )

    def _replace(self, **changes) -> "ClientOptions":
        # model_copy skips validation, so rebuild to keep the field constraints
        return type(self).model_validate({**self.model_dump(), **changes})

    def with_api_key(self, api_key: str) -> "ClientOptions":
        return self._replace(api_key=api_key)

    def with_base_url(self, base_url: str) -> "ClientOptions":
        return self._replace(base_url=base_url)

    def with_default_model(self, default_model: str) -> "ClientOptions":
        return self._replace(default_model=default_model)

    def with_timeout(self, timeout: float) -> "ClientOptions":
        return self._replace(timeout=timeout)

    def with_debug_logging(self, enabled: bool = True) -> "ClientOptions":
        return self._replace(debug_logging=enabled)
