"""
Application config using Pydantic Settings.

This module handles all environment variable configuration using pydantic-settings.
"""

from typing import List
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Config(BaseSettings):
    """Application config."""

    # Authentication
    webhook_secret: str = Field(
        default="",
        description="Shared secret expected in the X-Webhook-Signature header of lifecycle webhooks",
    )
    x_token: str = Field(
        default="12345678910",
        description="Token expected in the X-Token header of the SMS ingest endpoint",
    )

    # Policy API Configuration
    policy_api_url: str = Field(
        default="http://localhost:8787", description="Base URL of the policy API"
    )
    policy_api_key: str = Field(
        default="", description="Bearer token used when submitting OTPs"
    )
    policy_api_timeout: float = Field(
        default=10.0, description="Policy API request timeout in seconds"
    )

    # Email Capture Configuration
    email_capture_enabled: bool = Field(
        default=False, description="Enable the IMAP email capture source"
    )
    email_address: str = Field(default="", description="Mailbox login address")
    email_password: str = Field(default="", description="Mailbox app password")
    email_oauth_token: str = Field(
        default="",
        description="OAuth2 access token; when set, XOAUTH2 is used instead of the password",
    )
    email_imap_server: str = Field(
        default="imap.gmail.com", description="IMAP server for email capture"
    )
    email_imap_port: int = Field(default=993, description="IMAP server port (SSL)")
    email_folder: str = Field(default="INBOX", description="IMAP folder to watch")
    email_imap_timeout: float = Field(
        default=30.0, description="IMAP socket timeout in seconds"
    )

    # SMS Capture Configuration
    sms_capture_enabled: bool = Field(
        default=True, description="Enable the SMS capture source fed by /api/sms"
    )
    sms_buffer_size: int = Field(
        default=500, description="Number of received SMS messages kept in memory"
    )

    # Scheduling
    poll_interval_seconds: int = Field(
        default=10, description="Capture source polling interval in seconds"
    )
    sweep_interval_seconds: int = Field(
        default=30, description="Expired request sweep interval in seconds"
    )

    # Request defaults
    default_request_ttl_seconds: int = Field(
        default=300,
        description="Lifetime of an approved request whose webhook carries no expiresAt",
    )
    default_sources: List[str] = Field(
        default=["email", "sms"],
        description="Capture sources accepted when an approved webhook carries no filter.sources",
    )

    # Telegram Notification Configuration
    telegram_bot_token: str = Field(default="", description="Telegram bot token")
    telegram_chat_id: int = Field(
        default=0, description="Chat that receives expiry and delivery notifications"
    )

    # Logging Configuration
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @classmethod
    def create_test_config(cls, **kwargs) -> "Config":
        """Create a config instance for testing without loading from .env file or environment variables."""
        from pydantic_settings import PydanticBaseSettingsSource

        # Create a temporary class that only uses init settings (defaults + passed kwargs)
        class TestConfig(cls):  # type: ignore
            @classmethod
            def settings_customise_sources(
                cls,
                settings_cls: type[BaseSettings],
                init_settings: PydanticBaseSettingsSource,
                env_settings: PydanticBaseSettingsSource,
                dotenv_settings: PydanticBaseSettingsSource,
                file_secret_settings: PydanticBaseSettingsSource,
            ) -> tuple[PydanticBaseSettingsSource, ...]:
                return (init_settings,)

        return TestConfig(**kwargs)


# Global config instance
_config = None


def get_config() -> Config:
    """Get the global config instance, creating it if it doesn't exist."""
    global _config
    if _config is None:
        _config = Config()
    return _config


def reset_config():
    """Reset the global config instance. Used for testing."""
    global _config
    _config = None


# Create the global config instance
config = get_config()
