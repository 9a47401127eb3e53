"""Configuration management for Emergency Buddy."""

from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from emergency_buddy.models.escalation import EscalationConfig


class Settings(BaseSettings):
    """Application settings with validation."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Application
    APP_NAME: str = "Emergency Buddy"
    VERSION: str = "0.1.0"
    DEBUG: bool = Field(default=False, description="Enable debug mode")
    ENVIRONMENT: str = Field(default="development", description="Environment")

    # API Configuration
    API_V1_STR: str = "/api/v1"
    HOST: str = Field(default="0.0.0.0", description="Host to bind")
    PORT: int = Field(default=8000, description="Port to bind")

    # Escalation timing
    CANCEL_WINDOW_SECONDS: int = Field(
        default=5,
        description="Countdown before the escalation becomes irreversible"
    )
    CONTACT_TIMEOUT_SECONDS: int = Field(
        default=15,
        description="How long to wait for a contact before trying the next one"
    )
    RECORDING_DURATION_SECONDS: int = Field(
        default=30,
        description="Maximum length of the emergency audio capture"
    )
    KEEP_PARTIAL_RECORDINGS: bool = Field(
        default=True,
        description="Keep the partial recording when an escalation is cancelled"
    )

    # Voice trigger
    TRIGGER_PHRASES: str = Field(
        default="help me,emergency,call help,i need help",
        description="Comma-separated phrases that trigger an escalation"
    )

    # Storage
    CONTACTS_FILE: str = Field(
        default="data/contacts.json",
        description="JSON file holding the emergency contact list"
    )
    RECORDINGS_DIR: str = Field(
        default="data/recordings",
        description="Directory for captured emergency recordings"
    )

    # Audio capture
    AUDIO_SAMPLE_RATE: int = Field(default=16000, description="Capture sample rate (Hz)")
    AUDIO_CHANNELS: int = Field(default=1, description="Capture channel count")

    # Twilio
    TWILIO_ACCOUNT_SID: str = Field(default="", description="Twilio Account SID")
    TWILIO_AUTH_TOKEN: str = Field(default="", description="Twilio Auth Token")
    TWILIO_FROM_NUMBER: str = Field(default="", description="Twilio phone number")

    # Logging
    LOG_LEVEL: str = Field(default="INFO", description="Logging level")

    # Features
    ENABLE_SMS_ALERTS: bool = Field(
        default=True,
        description="Enable SMS alerts via Twilio"
    )
    ENABLE_VOICE_TRIGGER: bool = Field(
        default=True,
        description="Accept transcripts from the voice trigger"
    )

    @property
    def trigger_phrase_list(self) -> List[str]:
        """Convert comma-separated trigger phrases to a list."""
        if not self.TRIGGER_PHRASES:
            return []
        return [
            phrase.strip().lower()
            for phrase in self.TRIGGER_PHRASES.split(",")
            if phrase.strip()
        ]

    def get_config(self) -> EscalationConfig:
        """Resolve the escalation durations into an immutable snapshot."""
        return EscalationConfig(
            cancel_window_seconds=self.CANCEL_WINDOW_SECONDS,
            contact_timeout_seconds=self.CONTACT_TIMEOUT_SECONDS,
            recording_duration_seconds=self.RECORDING_DURATION_SECONDS,
            keep_partial_recording=self.KEEP_PARTIAL_RECORDINGS,
        )


# Global settings instance
settings = Settings()
