import functools
import logging
import os
from pathlib import Path
from typing import Optional

from aws_lambda_powertools import Logger
from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

import entities

DEFAULT_LOG_FILE = Path.home() / ".cache" / "aws-groups-manager" / "aws-groups-manager.log"

AWS_REGIONS = [
    "af-south-1",
    "ap-east-1",
    "ap-south-1",
    "ap-south-2",
    "ap-southeast-1",
    "ap-southeast-2",
    "ap-southeast-3",
    "ap-southeast-4",
    "ap-northeast-1",
    "ap-northeast-2",
    "ap-northeast-3",
    "ca-central-1",
    "eu-central-1",
    "eu-central-2",
    "eu-west-1",
    "eu-west-2",
    "eu-west-3",
    "eu-north-1",
    "eu-south-1",
    "eu-south-2",
    "il-central-1",
    "me-central-1",
    "me-south-1",
    "sa-east-1",
    "us-east-1",
    "us-east-2",
    "us-west-1",
    "us-west-2",
]


@functools.lru_cache(maxsize=None)
def _file_handler(path: str, service: Optional[str]) -> logging.Handler:  # noqa: ARG001
    # One handler per service: powertools sets its own formatter on the handler.
    # The terminal belongs to the UI, so records go to a file.
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    return logging.FileHandler(path, delay=True, encoding="utf-8")


def get_logger(service: Optional[str] = None, level: Optional[str] = None) -> Logger:
    kwargs = {
        "json_default": entities.json_default,
        "level": level or os.environ.get("LOG_LEVEL", "INFO"),
        "logger_handler": _file_handler(os.environ.get("LOG_FILE") or str(DEFAULT_LOG_FILE), service),
    }
    if service:
        kwargs["service"] = service
    return Logger(**kwargs)


logger = get_logger(service="config")


class Config(BaseSettings):
    model_config = SettingsConfigDict(frozen=True)

    log_level: str = "INFO"
    log_file: str = str(DEFAULT_LOG_FILE)

    aws_profile: str = Field(default="", validation_alias=AliasChoices("aws_profile", "AWS_PROFILE"))
    aws_region: str = Field(
        default="",
        validation_alias=AliasChoices("aws_region", "AWS_REGION", "AWS_DEFAULT_REGION"),
    )

    poll_interval_seconds: float = 2.0
    membership_lookup_concurrency: int = 8
    dispatcher_workers: int = 4

    @field_validator("poll_interval_seconds")
    @classmethod
    def poll_interval_must_be_positive(cls, v: float) -> float:  # noqa: ANN102
        if v <= 0:
            raise ValueError("poll_interval_seconds must be positive")
        return v

    @field_validator("membership_lookup_concurrency", "dispatcher_workers")
    @classmethod
    def worker_count_must_be_positive(cls, v: int) -> int:  # noqa: ANN102
        if v < 1:
            raise ValueError("worker counts must be at least 1")
        return v


_config: Optional[Config] = None


def get_config() -> Config:
    global _config  # noqa: PLW0603
    if _config is None:
        _config = Config()  # type: ignore # noqa: PGH003
        logger.debug("Configuration loaded", extra={"config": _config})
    return _config
