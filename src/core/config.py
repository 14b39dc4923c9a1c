"""Pydantic-settings configuration for the Volunteer Ops alerting service.

Loads notification channel credentials, JWT parameters and in-memory buffer
sizes from the .env file with sensible defaults for local development.
Computed fields split the comma-separated recipient lists.
"""

from pydantic import computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    # Project
    project_name: str = "Volunteer Ops"
    debug: bool = False

    # CORS
    allowed_origins: str = ""  # Comma-separated extra CORS origins

    # JWT Authentication
    jwt_secret_key: str = ""
    jwt_algorithm: str = "HS256"

    # Email (SMTP)
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: str = ""
    email_from: str = "noreply@volunteer-app.com"

    # SMS (Twilio)
    sms_account_sid: str = ""
    sms_auth_token: str = ""
    sms_from_number: str = ""
    twilio_api_base: str = "https://api.twilio.com/2010-04-01"

    # Slack
    slack_webhook_url: str = ""

    # Default alert recipients
    alert_email_recipients: str = "admin@volunteer-app.com"
    alert_dba_recipients: str = "dba@volunteer-app.com"
    alert_sms_recipients: str = ""

    # In-memory buffers
    metrics_capacity: int = 1000
    alert_history_limit: int = 10000

    # Process resource sampling and windowed-rule sweep
    resource_sample_interval_seconds: float = 30.0

    # Notification transport
    notifier_timeout_seconds: float = 10.0

    @computed_field
    @property
    def alert_email_list(self) -> list[str]:
        """Admin email recipients as a list."""
        return _split_csv(self.alert_email_recipients)

    @computed_field
    @property
    def alert_dba_list(self) -> list[str]:
        """DBA email recipients as a list."""
        return _split_csv(self.alert_dba_recipients)

    @computed_field
    @property
    def alert_sms_list(self) -> list[str]:
        """On-call phone numbers as a list."""
        return _split_csv(self.alert_sms_recipients)


def _split_csv(raw: str) -> list[str]:
    return [item.strip() for item in raw.split(",") if item.strip()]


# Singleton instance
settings = Settings()
