"""
Configuration management for the Highrise poller.

This module handles environment variables, settings validation, and configuration
management using Pydantic Settings for type safety and validation.
"""

from typing import Any

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import ConfigurationError

PRIVATE_AUTH_TYPE = "Private"
OAUTH_AUTH_TYPE = "OAuth"

DEFAULT_ENDPOINT_SINGULARS = {
    "people": "person",
    "companies": "company",
    "deals": "deal",
    "kases": "kase",
    "tasks": "task",
    "notes": "note",
    "emails": "email",
}


class PollConfig(BaseModel):
    """Polling configuration settings."""

    daily_call_budget: int = Field(
        default=500,
        gt=0,
        description="Daily API calls this poller may spend (provider quota is 1000)",
    )
    strict_identity: bool = Field(
        default=False,
        description="Only classify entities as new when their id was never seen",
    )
    max_seen_ids: int = Field(
        default=0,
        ge=0,
        description="Seen identifiers kept per endpoint (0 = unbounded)",
    )
    endpoint_singulars: dict[str, str] = Field(
        default_factory=lambda: dict(DEFAULT_ENDPOINT_SINGULARS),
        description="Endpoint name to singular entity kind",
    )


class ClientConfig(BaseModel):
    """Highrise HTTP client configuration settings."""

    base_url: str = Field(..., description="Highrise account base URL")
    api_token: str = Field(default="", description="API token for Private mode")
    timeout_seconds: float = Field(default=30.0, description="Request timeout")
    user_agent: str = Field(
        default="highrise-poller/0.1.0", description="User-Agent header"
    )


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Highrise configuration
    highrise_account: str = Field(..., description="Highrise account subdomain")
    highrise_api_url: str = Field(
        default="", description="Base URL override (defaults to the account URL)"
    )
    highrise_api_token: str = Field(
        default="", description="Highrise API token (Private auth mode)"
    )
    highrise_authorization: str = Field(
        default="", description="OAuth credential attached to each cycle"
    )
    auth_type: str = Field(
        default=PRIVATE_AUTH_TYPE, description="Auth mode: Private or OAuth"
    )

    # Subscription configuration
    connector_key: str = Field(
        default="highrise", description="Tenant key prefixed to event names"
    )
    subscription_id: str = Field(default="default", description="Subscription id")
    endpoints: str | list[str] = Field(
        default="people,companies",
        description="Endpoints to poll (comma-separated)",
    )

    # Polling configuration
    daily_call_budget: int = Field(default=500, description="Daily API call budget")
    strict_identity: bool = Field(
        default=False, description="Gate new classification on unseen identifiers"
    )
    max_seen_ids: int = Field(
        default=0, description="Seen identifiers kept per endpoint (0 = unbounded)"
    )

    # HTTP configuration
    http_timeout_seconds: float = Field(default=30.0, description="HTTP timeout")
    user_agent: str = Field(
        default="highrise-poller/0.1.0", description="User-Agent header"
    )

    # State configuration
    state_backend: str = Field(default="memory", description="memory or json")
    state_file: str = Field(
        default="./highrise_state.json", description="JSON state file path"
    )

    # Logging configuration
    log_level: str = Field(default="INFO", description="Log level")
    log_format: str = Field(default="json", description="Log format")

    @field_validator("endpoints", mode="before")
    @classmethod
    def parse_endpoints(cls, v: Any) -> list[str]:
        """Parse endpoints from comma-separated string or list."""
        if isinstance(v, str):
            return [name.strip() for name in v.split(",") if name.strip()]
        elif isinstance(v, list):
            return v
        else:
            error_msg = f"endpoints must be a string or list, got {type(v)}"
            raise ValueError(error_msg)

    @field_validator("auth_type")
    @classmethod
    def validate_auth_type(cls, v: str) -> str:
        """Validate auth type."""
        allowed_types = {PRIVATE_AUTH_TYPE, OAUTH_AUTH_TYPE}
        if v not in allowed_types:
            raise ValueError(f"Invalid auth type: {v}")
        return v

    @field_validator("daily_call_budget")
    @classmethod
    def validate_daily_call_budget(cls, v: int) -> int:
        """Validate daily call budget."""
        if v <= 0:
            raise ValueError("daily_call_budget must be positive")
        return v

    @field_validator("max_seen_ids")
    @classmethod
    def validate_max_seen_ids(cls, v: int) -> int:
        """Validate seen-set bound."""
        if v < 0:
            raise ValueError("max_seen_ids cannot be negative")
        return v

    @field_validator("state_backend")
    @classmethod
    def validate_state_backend(cls, v: str) -> str:
        """Validate state backend."""
        allowed_backends = {"memory", "json"}
        if v.lower() not in allowed_backends:
            raise ValueError(f"Invalid state backend: {v}")
        return v.lower()

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        allowed_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in allowed_levels:
            raise ValueError(f"Invalid log level: {v}")
        return v.upper()

    @property
    def base_url(self) -> str:
        """Get the Highrise base URL."""
        if self.highrise_api_url:
            return self.highrise_api_url.rstrip("/")
        return f"https://{self.highrise_account}.highrisehq.com"

    @property
    def endpoint_list(self) -> list[str]:
        """Get endpoints as a list."""
        endpoints = self.endpoints
        if isinstance(endpoints, str):
            return [name.strip() for name in endpoints.split(",") if name.strip()]
        return endpoints

    @property
    def poll_config(self) -> PollConfig:
        """Get polling configuration."""
        return PollConfig(
            daily_call_budget=self.daily_call_budget,
            strict_identity=self.strict_identity,
            max_seen_ids=self.max_seen_ids,
        )

    @property
    def client_config(self) -> ClientConfig:
        """Get HTTP client configuration."""
        return ClientConfig(
            base_url=self.base_url,
            api_token=self.highrise_api_token,
            timeout_seconds=self.http_timeout_seconds,
            user_agent=self.user_agent,
        )


# Global settings instance - initialized lazily to avoid import-time errors
_settings_instance = None


def get_settings() -> Settings:
    """Get the global settings instance, creating it if necessary."""
    global _settings_instance
    if _settings_instance is None:
        try:
            _settings_instance = Settings()  # type: ignore[call-arg,unused-ignore]
        except ValueError as e:
            if "highrise_account" in str(e):
                raise ConfigurationError(
                    "HIGHRISE_ACCOUNT environment variable is required. "
                    "Please set it to your Highrise account subdomain.",
                    context={"setting": "highrise_account"},
                ) from e
            raise
    return _settings_instance
