"""
Configuration settings for the StateGraph engine.
"""

from pydantic_settings import BaseSettings
from typing import Optional
import logging


class Settings(BaseSettings):
    """Engine settings with environment variable support."""
    
    # Application
    APP_NAME: str = "StateGraph"
    APP_VERSION: str = "1.0.0"
    
    # Workflow Engine
    MAX_STEPS: int = 100  # Default bound on node invocations per run
    
    # Checkpoints
    CHECKPOINT_BACKEND: str = "memory"  # "memory" or "file"
    CHECKPOINT_DIR: str = ".checkpoints"
    
    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    
    class Config:
        env_file = ".env"
        case_sensitive = True


# Global settings instance
settings = Settings()


def configure_logging(config: Optional[Settings] = None) -> None:
    """Apply the configured log level and format to the root logger."""
    config = config or settings
    logging.basicConfig(
        level=getattr(logging, config.LOG_LEVEL.upper(), logging.INFO),
        format=config.LOG_FORMAT,
    )
