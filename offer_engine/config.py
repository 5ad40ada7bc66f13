"""
Configuration management for the Offer Engine
"""

import json
import os
from pathlib import Path
from typing import Any, Dict, Optional

from loguru import logger
from pydantic import BaseModel, Field, ValidationError

ENV_PREFIX = "OFFER_ENGINE_"


class OfferEngineConfig(BaseModel):
    """Configuration model for the Offer Engine"""

    # Storage settings
    db_path: str = Field(default="offers.db", description="SQLite database file for the offer store")

    # Logging settings
    log_level: str = Field(default="INFO", description="Logging level")
    log_file: Optional[str] = Field(default=None, description="Optional log file path")
    log_rotation: str = Field(default="10 MB", description="Log rotation size")
    log_retention: str = Field(default="30 days", description="Log retention period")

    # Computation settings
    output_precision: int = Field(default=2, description="Decimal places for currency amounts")
    max_alternatives: int = Field(default=2, description="Alternative offers reported next to the best one")

    # Summary settings
    parallel_summary: bool = Field(default=False, description="Compute summary instruments concurrently")
    max_workers: int = Field(default=4, description="Maximum worker threads for the summary")

    # Listing settings
    default_page_limit: int = Field(default=50, description="Default page size for offer listings")
    max_page_limit: int = Field(default=100, description="Largest accepted page size")


class ConfigManager:
    """Configuration manager for the Offer Engine"""

    def __init__(self, config_file: Optional[str] = None):
        """
        Initialize configuration manager

        Args:
            config_file: Path to configuration file
        """
        self.config_file = config_file or "offer_engine_config.json"
        self._config = None
        self._load_config()

    def _load_config(self) -> None:
        """Load configuration from file, falling back to environment variables"""
        try:
            if Path(self.config_file).exists():
                with open(self.config_file, "r", encoding="utf-8") as f:
                    config_data = json.load(f)
                self._config = OfferEngineConfig(**config_data)
            else:
                self._config = OfferEngineConfig(**self.get_environment_config())
        except (OSError, json.JSONDecodeError, ValidationError) as e:
            logger.warning(f"Failed to load configuration: {e}")
            self._config = OfferEngineConfig()

    def get_config(self) -> OfferEngineConfig:
        """Get current configuration"""
        return self._config

    def update_config(self, **kwargs) -> None:
        """Update configuration with new values"""
        if self._config:
            for key, value in kwargs.items():
                if hasattr(self._config, key):
                    setattr(self._config, key, value)

    def save_config(self) -> None:
        """Save current configuration to file"""
        try:
            with open(self.config_file, "w", encoding="utf-8") as f:
                json.dump(self._config.model_dump(), f, indent=2)
        except OSError as e:
            logger.warning(f"Failed to save configuration: {e}")

    def reset_to_defaults(self) -> None:
        """Reset configuration to defaults"""
        self._config = OfferEngineConfig()

    def validate_config(self) -> Dict[str, Any]:
        """Validate current configuration"""
        validation_results = {
            "valid": True,
            "warnings": [],
            "errors": [],
        }

        valid_log_levels = ["TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"]
        if self._config.log_level.upper() not in valid_log_levels:
            validation_results["errors"].append(f"Invalid log level: {self._config.log_level}")

        if self._config.output_precision < 0:
            validation_results["errors"].append("output_precision must be non-negative")

        if self._config.max_alternatives < 0:
            validation_results["errors"].append("max_alternatives must be non-negative")

        if self._config.max_workers <= 0:
            validation_results["errors"].append("max_workers must be positive")

        if not (1 <= self._config.default_page_limit <= self._config.max_page_limit):
            validation_results["errors"].append("default_page_limit must be between 1 and max_page_limit")

        db_parent = Path(self._config.db_path).parent
        if str(db_parent) not in ("", ".") and not db_parent.exists():
            validation_results["warnings"].append(f"Database directory does not exist: {db_parent}")

        validation_results["valid"] = not validation_results["errors"]
        return validation_results

    def get_environment_config(self) -> Dict[str, str]:
        """Get configuration from environment variables"""
        env_config = {}

        for field_name in OfferEngineConfig.model_fields:
            env_value = os.getenv(f"{ENV_PREFIX}{field_name.upper()}")
            if env_value is not None:
                env_config[field_name] = env_value

        return env_config


# Global configuration instance
config_manager = ConfigManager()


def get_config() -> OfferEngineConfig:
    """Get the global configuration instance"""
    return config_manager.get_config()


def update_config(**kwargs) -> None:
    """Update the global configuration"""
    config_manager.update_config(**kwargs)


def save_config() -> None:
    """Save the global configuration"""
    config_manager.save_config()
