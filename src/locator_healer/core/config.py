from pydantic_settings import BaseSettings
from pydantic import Field, validator
from dotenv import load_dotenv

load_dotenv()

class Settings(BaseSettings):
    # Healing Configuration
    LOCATOR_HEALING_ENABLED: bool = Field(default=True, description="Global switch for locator healing")
    LOCATOR_HEALING_CONFIG_PATH: str = Field(default="config/locator_healing.yaml", description="Path to the YAML healing configuration")

    # Logging Configuration
    LOG_LEVEL: str = Field(default="INFO", description="Log level for the healing loggers")
    LOG_DIR: str = Field(default="logs", description="Directory for rotating log files")

    @validator('LOG_LEVEL')
    def validate_log_level(cls, v):
        """Validate that LOG_LEVEL is a standard logging level name."""
        if v.upper() not in ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']:
            raise ValueError(f"LOG_LEVEL must be a standard logging level, got '{v}'")
        return v.upper()

    class Config:
        env_file = ".env"
        env_file_encoding = 'utf-8'
        extra = 'allow'  # Allow extra fields from .env file

settings = Settings()
