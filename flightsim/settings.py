# flightsim/settings.py
"""
Application settings.
"""

import os
from dataclasses import dataclass
from typing import Optional

# Load .env file
from dotenv import load_dotenv
load_dotenv()


@dataclass
class Settings:
    """Application configuration."""

    # Database
    database_url: str = os.getenv("DATABASE_URL", "sqlite:///./flightsim.db")

    # LLM providers
    openai_api_key: Optional[str] = os.getenv("OPENAI_API_KEY")
    anthropic_api_key: Optional[str] = os.getenv("ANTHROPIC_API_KEY")
    llm_provider: str = os.getenv("LLM_PROVIDER", "anthropic")
    openai_model: str = os.getenv("OPENAI_MODEL", "gpt-4o-mini")
    anthropic_model: str = os.getenv("ANTHROPIC_MODEL", "claude-3-sonnet-20240229")
    llm_temperature: float = float(os.getenv("LLM_TEMPERATURE", "0.7"))
    llm_max_tokens: int = int(os.getenv("LLM_MAX_TOKENS", "1000"))
    llm_scenario_max_tokens: int = int(os.getenv("LLM_SCENARIO_MAX_TOKENS", "4000"))
    llm_timeout_seconds: float = float(os.getenv("LLM_TIMEOUT", "60"))
    llm_max_attempts: int = int(os.getenv("LLM_MAX_ATTEMPTS", "3"))

    # Simulator seed values
    default_latitude: float = float(os.getenv("DEFAULT_LATITUDE", "37.6213"))
    default_longitude: float = float(os.getenv("DEFAULT_LONGITUDE", "-122.3790"))
    default_speed: float = float(os.getenv("DEFAULT_SPEED", "250"))

    # Scheduling of scenario content without explicit trigger times
    decision_interval_seconds: int = int(os.getenv("DECISION_INTERVAL", "60"))
    communication_interval_seconds: int = int(os.getenv("COMMUNICATION_INTERVAL", "45"))

    # History page sizes
    response_history_limit: int = int(os.getenv("RESPONSE_HISTORY_LIMIT", "5"))
    communication_history_limit: int = int(os.getenv("COMMUNICATION_HISTORY_LIMIT", "50"))

    # Logging
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    log_json: bool = os.getenv("LOG_JSON", "true").lower() == "true"

    # API settings
    api_host: str = os.getenv("API_HOST", "0.0.0.0")
    api_port: int = int(os.getenv("API_PORT", "8000"))
    allowed_origins: str = os.getenv(
        "ALLOWED_ORIGINS", "http://localhost:3000,http://localhost:8000"
    )


# Global settings instance
settings = Settings()
