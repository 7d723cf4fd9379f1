"""Configuration management using Pydantic Settings.

Loads configuration from environment variables with .env file support.
"""

from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application configuration."""

    # Bling API Configuration
    bling_client_id: Optional[str] = None
    bling_client_secret: Optional[str] = None
    bling_api_base: str = "https://www.bling.com.br/Api/v3"
    bling_redirect_uri: Optional[str] = None

    # Database Configuration
    database_url: str = "sqlite+aiosqlite:///./bikeshop.db"

    # Server Configuration
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "INFO"
    log_dir: Optional[str] = "logs"
    environment: str = "development"

    # Timeouts (seconds)
    http_timeout_seconds: float = 30.0
    invoice_timeout_seconds: float = 45.0

    # Admin Configuration
    admin_api_key: Optional[str] = None

    # Store Configuration
    default_whatsapp_number: str = "5531995326386"

    # GlitchTip Error Monitoring
    glitchtip_dsn: Optional[str] = None

    class Config:
        """Pydantic config."""

        env_file = ".env"
        case_sensitive = False
        extra = "ignore"


# Create a global settings instance
settings = Settings()
