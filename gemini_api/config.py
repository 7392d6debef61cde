"""
Configuration management for the Gemini PDF Chat Gateway.
Handles environment variables and application settings.
"""

from datetime import timedelta
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from dotenv import load_dotenv

# Load environment variables
load_dotenv()


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""
    
    # API Configuration
    app_name: str = Field(default="Gemini PDF Chat Gateway")
    app_version: str = Field(default="1.0.0")
    debug: bool = Field(default=False)
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=3000)
    
    # Security Configuration
    api_key: str = Field(default="")
    
    # Google AI Configuration
    google_api_key: str = Field(default="")
    default_gemini_model: str = Field(default="gemini-2.0-flash-001")
    default_preprompt: str = Field(default="")
    gemini_temperature: float = Field(default=1.0)
    gemini_top_p: float = Field(default=0.95)
    gemini_max_output_tokens: int = Field(default=8192)
    upstream_timeout_seconds: float = Field(default=120.0)
    
    # Chat Session Configuration
    session_ttl_hours: float = Field(default=3.0)
    session_cleanup_interval_minutes: float = Field(default=5.0)
    
    # File Processing Configuration
    max_file_size_mb: int = Field(default=10)
    upload_dir: str = Field(default="uploads")
    
    # Field names double as environment variable names (case-insensitive)
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    @property
    def session_ttl(self) -> timedelta:
        return timedelta(hours=self.session_ttl_hours)

    @property
    def session_cleanup_interval(self) -> timedelta:
        return timedelta(minutes=self.session_cleanup_interval_minutes)


# Global settings instance
settings = Settings()


def get_settings() -> Settings:
    """Get application settings."""
    return settings


def validate_required_settings(app_settings: Settings = None) -> None:
    """Validate that all required settings are present."""
    app_settings = app_settings or settings
    required_settings = [
        ("api_key", app_settings.api_key),
        ("google_api_key", app_settings.google_api_key),
    ]
    
    missing_settings = []
    for setting_name, setting_value in required_settings:
        if not setting_value:
            missing_settings.append(setting_name)
    
    if missing_settings:
        raise ValueError(
            f"Missing required environment variables: {', '.join(missing_settings)}. "
            "Please check your .env file."
        )
