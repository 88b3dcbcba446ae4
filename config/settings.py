"""
Configuration management for the Device Events backend.

Settings are loaded with pydantic-settings from environment variables and
optional .env files. Secrets such as the Elasticsearch API key and the
geolocation provider token are never hard-coded; the application refuses to
start when they are missing.
"""

import os
from enum import Enum
from pathlib import Path
from typing import Optional, List, Tuple

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    """Supported deployment environments."""
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


def _detect_environment() -> Environment:
    """
    Detect the current environment from the ENVIRONMENT variable.

    Returns:
        Environment: The detected environment, defaults to DEVELOPMENT if not set.
    """
    env_value = os.environ.get("ENVIRONMENT", "development").lower().strip()
    try:
        return Environment(env_value)
    except ValueError:
        return Environment.DEVELOPMENT


def _get_env_files(environment: Environment) -> Tuple[str, ...]:
    """
    Get the .env files to load for the given environment.

    The base .env file is loaded first and the environment-specific file
    overrides it.
    """
    env_file_map = {
        Environment.DEVELOPMENT: ".env.development",
        Environment.STAGING: ".env.staging",
        Environment.PRODUCTION: ".env.production",
    }
    return (".env", env_file_map.get(environment, ".env.development"))


def _validate_http_url(value: str, field_name: str) -> str:
    if not value or not value.strip():
        raise ValueError(f"{field_name} cannot be empty")
    value = value.strip()
    if not (value.startswith("http://") or value.startswith("https://")):
        raise ValueError(f"{field_name} must be a valid HTTP/HTTPS URL")
    return value


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Required fields (ELASTIC_ENDPOINT, ELASTIC_API_KEY, GEOLOCATION_API_TOKEN)
    must be provided via the environment or a .env file.
    """

    environment: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="Deployment environment (development, staging, production)"
    )

    # Elasticsearch
    elastic_endpoint: str = Field(
        ...,
        description="Elasticsearch endpoint URL"
    )
    elastic_api_key: str = Field(
        ...,
        description="Elasticsearch API key for authentication"
    )
    events_index: str = Field(
        default="device_events",
        description="Index holding ingested event records"
    )
    locations_index: str = Field(
        default="device_locations",
        description="Index holding the last known location per device"
    )

    # Geolocation provider (Unwired Labs)
    geolocation_api_url: str = Field(
        default="https://unwiredlabs.com/v2/process.php",
        description="Cell tower geolocation endpoint"
    )
    geolocation_api_token: str = Field(
        ...,
        description="Access token for the geolocation provider"
    )

    # Alert notifications
    alert_webhook_url: Optional[str] = Field(
        default=None,
        description="Webhook receiving alert-worthy events; alerts are only logged when unset"
    )

    # Queries
    max_page_size: int = Field(
        default=100,
        ge=1,
        le=10000,
        description="Upper bound for the page size of listing endpoints"
    )

    # Observability
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )

    # CORS
    cors_origins: List[str] = Field(
        default=["http://localhost:3000"],
        description="Allowed CORS origins"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("elastic_endpoint")
    @classmethod
    def validate_elastic_endpoint(cls, v: str) -> str:
        """Validate that elastic_endpoint is a non-empty HTTP(S) URL."""
        return _validate_http_url(v, "elastic_endpoint")

    @field_validator("elastic_api_key")
    @classmethod
    def validate_elastic_api_key(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("elastic_api_key cannot be empty")
        return v.strip()

    @field_validator("geolocation_api_url")
    @classmethod
    def validate_geolocation_api_url(cls, v: str) -> str:
        return _validate_http_url(v, "geolocation_api_url")

    @field_validator("geolocation_api_token")
    @classmethod
    def validate_geolocation_api_token(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("geolocation_api_token cannot be empty")
        return v.strip()

    @field_validator("alert_webhook_url")
    @classmethod
    def validate_alert_webhook_url(cls, v: Optional[str]) -> Optional[str]:
        """An empty value disables the webhook."""
        if v is None or not v.strip():
            return None
        return _validate_http_url(v, "alert_webhook_url")

    @field_validator("events_index", "locations_index")
    @classmethod
    def validate_index_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("index name cannot be empty")
        if v != v.lower():
            raise ValueError("Elasticsearch index names must be lowercase")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate that log_level is a valid logging level."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v = v.strip().upper()
        if v not in valid_levels:
            raise ValueError(f"log_level must be one of: {', '.join(sorted(valid_levels))}")
        return v

    @field_validator("cors_origins")
    @classmethod
    def validate_cors_origins(cls, v: List[str]) -> List[str]:
        """Reject wildcard and non-HTTP origins."""
        validated_origins = []
        for origin in v:
            origin = origin.strip()
            if "*" in origin:
                raise ValueError(
                    f"Wildcard patterns are not allowed in CORS origins: {origin}"
                )
            if not (origin.startswith("http://") or origin.startswith("https://")):
                raise ValueError(
                    f"Invalid CORS origin format: {origin}. "
                    "Must start with http:// or https://"
                )
            validated_origins.append(origin)
        return validated_origins


class ConfigurationError(Exception):
    """Exception raised when configuration validation fails."""

    def __init__(self, message: str, missing_fields: Optional[List[str]] = None,
                 invalid_fields: Optional[dict] = None):
        self.message = message
        self.missing_fields = missing_fields or []
        self.invalid_fields = invalid_fields or {}
        super().__init__(self.format_error_message())

    def format_error_message(self) -> str:
        """Format a descriptive error message listing all issues."""
        parts = [self.message]

        if self.missing_fields:
            parts.append(f"\nMissing required fields: {', '.join(self.missing_fields)}")

        if self.invalid_fields:
            invalid_parts = [f"  - {field}: {error}" for field, error in self.invalid_fields.items()]
            parts.append("\nInvalid field values:\n" + "\n".join(invalid_parts))

        return "".join(parts)


def create_settings_for_environment(environment: Optional[Environment] = None) -> Settings:
    """
    Create Settings for a specific environment.

    Loads the base .env file and the environment-specific override, then
    converts pydantic validation failures into a ConfigurationError that
    lists every missing or invalid field.

    Raises:
        ConfigurationError: If required settings are missing or invalid.
    """
    if environment is None:
        environment = _detect_environment()

    env_files = _get_env_files(environment)
    existing_env_files = [f for f in env_files if Path(f).exists()] or list(env_files)

    try:
        class EnvironmentSettings(Settings):
            model_config = SettingsConfigDict(
                env_file=tuple(existing_env_files),
                env_file_encoding="utf-8",
                case_sensitive=False,
                extra="ignore"
            )

        return EnvironmentSettings()
    except Exception as e:
        missing_fields = []
        invalid_fields = {}

        if hasattr(e, "errors"):
            for error in e.errors():
                field_name = ".".join(str(loc) for loc in error.get("loc", []))
                if error.get("type", "") == "missing":
                    missing_fields.append(field_name)
                else:
                    invalid_fields[field_name] = error.get("msg", str(error))

        raise ConfigurationError(
            f"Failed to load configuration for environment '{environment.value}'",
            missing_fields=missing_fields,
            invalid_fields=invalid_fields
        ) from e


_settings_cache: Optional[Settings] = None


def get_settings() -> Settings:
    """
    Get the application settings singleton.

    Raises:
        ConfigurationError: If required settings are missing or invalid.
    """
    global _settings_cache

    if _settings_cache is None:
        _settings_cache = create_settings_for_environment()

    return _settings_cache


def clear_settings_cache() -> None:
    """Clear the settings cache so the next call reloads from the environment."""
    global _settings_cache
    _settings_cache = None


def validate_startup() -> None:
    """
    Validate settings that only matter once the service is about to accept requests.

    Raises:
        ConfigurationError: If any startup check fails.
    """
    settings = get_settings()
    validation_errors = {}

    if settings.events_index == settings.locations_index:
        validation_errors["locations_index"] = (
            "Events and locations must be stored in different indices"
        )

    if settings.environment == Environment.PRODUCTION:
        localhost_only = all(
            "localhost" in origin or "127.0.0.1" in origin
            for origin in settings.cors_origins
        )
        if localhost_only:
            validation_errors["cors_origins"] = (
                "Production environment requires non-localhost CORS origins. "
                "Configure your production frontend domain(s)."
            )

    if validation_errors:
        raise ConfigurationError(
            "Configuration validation failed during startup",
            invalid_fields=validation_errors
        )
