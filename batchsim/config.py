"""Application configuration via environment variables."""

from pydantic_settings import BaseSettings
from typing import Literal


class Settings(BaseSettings):
    # Service
    service_port: int = 8001

    # Submission
    default_concurrency: int = 3
    auto_collect: bool = True

    # Simulated worker pool (seconds; converted to ms by the runner)
    latency_min_seconds: float = 1
    latency_max_seconds: float = 5
    failure_rate: float = 0.06

    # Build defaults
    default_image_size: str = "768x1024"
    group_fill_count: int = 2

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["console", "json"] = "console"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}


settings = Settings()
