"""
Configuration management using Pydantic Settings.
Reads from environment variables.
"""

from pathlib import Path

from pydantic import ConfigDict, Field
from pydantic_settings import BaseSettings

DEFAULT_SLIP_FILE_PATTERN = r"^(?P<empid>[A-Za-z0-9_-]+)_salaryslip\.pdf$"


class Settings(BaseSettings):
    """Application settings."""

    model_config = ConfigDict(env_file=".env", case_sensitive=False)

    # Storage locations
    salary_slip_dir: Path = Field(default=Path("salary-pdf"), alias="SALARY_SLIP_DIR")
    employee_workbook_path: Path = Field(
        default=Path("employees.xlsx"), alias="EMPLOYEE_WORKBOOK_PATH"
    )
    employee_snapshot_path: Path = Field(
        default=Path("data/employees.json"), alias="EMPLOYEE_SNAPSHOT_PATH"
    )
    slip_file_pattern: str = Field(default=DEFAULT_SLIP_FILE_PATTERN, alias="SLIP_FILE_PATTERN")
    snapshot_debounce_seconds: float = Field(default=0.5, alias="SNAPSHOT_DEBOUNCE_SECONDS")

    # Chatbot behaviour
    trigger_keyword: str = Field(default="sobha", alias="TRIGGER_KEYWORD")
    hr_signature: str = Field(default="Sobha HR", alias="HR_SIGNATURE")
    default_country_code: str = Field(default="91", alias="DEFAULT_COUNTRY_CODE")
    conversation_max_age_seconds: int = Field(default=1800, alias="CONVERSATION_MAX_AGE_SECONDS")
    conversation_sweep_interval_seconds: int = Field(
        default=900, alias="CONVERSATION_SWEEP_INTERVAL_SECONDS"
    )

    # WhatsApp bridge
    whatsapp_bridge_url: str | None = Field(default=None, alias="WHATSAPP_BRIDGE_URL")
    whatsapp_bridge_token: str | None = Field(default=None, alias="WHATSAPP_BRIDGE_TOKEN")
    whatsapp_bridge_timeout: float = Field(default=30.0, alias="WHATSAPP_BRIDGE_TIMEOUT")

    # Application Configuration
    environment: str = Field(default="development", alias="ENVIRONMENT")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")


# Global settings instance
settings = Settings()
