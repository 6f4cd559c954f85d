"""Application settings and configuration.

This module defines all configuration options for the MentorLink engines.
Settings are loaded from environment variables with sensible defaults.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from environment variables.

    Settings can be overridden via environment variables or .env files.
    """

    # Logging
    log_level: str = Field(default="INFO", alias="MENTORLINK_LOG_LEVEL")

    # Remote API
    api_enabled: bool = Field(default=True, alias="MENTORLINK_API_ENABLED")
    api_base_url: str | None = Field(default=None, alias="MENTORLINK_API_BASE_URL")
    api_prefix: str = Field(default="/api", alias="MENTORLINK_API_PREFIX")
    api_token: str | None = Field(default=None, alias="MENTORLINK_API_TOKEN")
    api_http_timeout_seconds: float = Field(
        default=10.0,
        alias="MENTORLINK_API_HTTP_TIMEOUT_SECONDS",
    )

    # Service tokens minted from a shared secret (used when no bearer token is set)
    api_shared_secret: str | None = Field(default=None, alias="MENTORLINK_API_SHARED_SECRET")
    api_client_id: str = Field(default="mentorlink-client", alias="MENTORLINK_API_CLIENT_ID")
    api_audience: str = Field(default="mentorship-api", alias="MENTORLINK_API_JWT_AUD")
    api_token_ttl_seconds: int = Field(default=300, alias="MENTORLINK_API_TOKEN_TTL_SECONDS")

    # Circuit breaker
    circuit_failure_threshold: int = Field(default=5, alias="MENTORLINK_CIRCUIT_FAILURE_THRESHOLD")
    circuit_recovery_timeout_seconds: float = Field(
        default=60.0,
        alias="MENTORLINK_CIRCUIT_RECOVERY_TIMEOUT_SECONDS",
    )
    circuit_success_threshold: int = Field(default=3, alias="MENTORLINK_CIRCUIT_SUCCESS_THRESHOLD")

    # Display fallbacks for counterpart profiles
    unknown_company_label: str = Field(default="Unknown Company", alias="UNKNOWN_COMPANY_LABEL")
    hidden_company_label: str = Field(
        default="Company information hidden",
        alias="HIDDEN_COMPANY_LABEL",
    )
    unknown_user_label: str = Field(default="Unknown User", alias="UNKNOWN_USER_LABEL")
    default_job_title: str = Field(default="Professional", alias="DEFAULT_JOB_TITLE")
    default_avatar: str = Field(default="\U0001F464", alias="DEFAULT_AVATAR")

    model_config = SettingsConfigDict(
        env_file=".env",
        validate_assignment=True,
        extra="ignore",
    )

    @property
    def api_root(self) -> str:
        """Return the base URL joined with the API prefix.

        Returns:
            Root URL used by the HTTP client, or an empty string when unset
        """
        if not self.api_base_url:
            return ""
        return self.api_base_url.rstrip("/") + "/" + self.api_prefix.strip("/")


settings = Settings()
