"""Settings via pydantic-settings with CONCIERGE_ env prefix.

Provider credentials use validation_alias to read the conventional
unprefixed env vars (ANTHROPIC_API_KEY, GOOGLE_CLIENT_ID, ...), so the same
.env file works for the service and for ad-hoc scripts.
"""

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="CONCIERGE_", env_file=".env", extra="ignore")

    # Runtime
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "info"

    # LLM
    anthropic_api_key: str = Field("", validation_alias="ANTHROPIC_API_KEY")
    model: str = "claude-sonnet-4-20250514"
    classification_model: str = "claude-3-5-sonnet-20241022"
    max_tokens: int = 4096
    api_base_url: str = "https://api.anthropic.com"
    api_timeout_connect: int = 10  # seconds
    api_timeout_read: int = 120  # seconds

    # Orchestration loop bounds
    max_iterations: int = 15  # model round-trips per run
    max_tool_calls: int = 50  # tool calls across all iterations of a run

    # Safety gate
    history_capacity: int = 10  # tool-call records kept per session
    safety_window_seconds: float = 30.0

    # Event stream
    stream_queue_size: int = 32

    refusal_message: str = (
        "I'm not able to help with that request. "
        "Please try asking something else about your calendar or emails."
    )

    # Google
    google_client_id: str = Field("", validation_alias="GOOGLE_CLIENT_ID")
    google_client_secret: str = Field("", validation_alias="GOOGLE_CLIENT_SECRET")
    google_calendar_url: str = "https://www.googleapis.com/calendar/v3"
    google_gmail_url: str = "https://gmail.googleapis.com/gmail/v1"
    google_token_url: str = "https://oauth2.googleapis.com/token"
    google_timeout: int = 30  # seconds

    @model_validator(mode="after")
    def _validate_bounds(self) -> "Settings":
        if self.max_iterations < 1:
            raise ValueError("max_iterations must be >= 1")
        if self.max_tool_calls < 1:
            raise ValueError("max_tool_calls must be >= 1")
        if self.history_capacity < 1:
            raise ValueError("history_capacity must be >= 1")
        if self.safety_window_seconds <= 0:
            raise ValueError("safety_window_seconds must be > 0")
        if self.stream_queue_size < 1:
            raise ValueError("stream_queue_size must be >= 1")
        return self
