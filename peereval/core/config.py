"""
Configuration for the peereval platform.
"""

import json
import os
from typing import Any, Dict, Literal, Mapping, Optional

from pydantic import BaseModel, Field, ValidationError as PydanticValidationError, field_validator, model_validator

from .exceptions import ConfigurationError


DEFAULT_BASE_URL = "https://roble-api.openlab.uninorte.edu.co/database"

ENV_OVERRIDES = {
    "PEEREVAL_BASE_URL": "base_url",
    "PEEREVAL_PROJECT_ID": "project_id",
    "PEEREVAL_ACCESS_TOKEN": "access_token",
    "PEEREVAL_REFRESH_TOKEN": "refresh_token",
}


class PeerEvalConfig(BaseModel):
    """Settings consumed by the composition root."""

    store_type: Literal["remote", "memory"] = "memory"
    base_url: str = DEFAULT_BASE_URL
    project_id: Optional[str] = None
    request_timeout: float = Field(default=10.0, gt=0)
    refresh_url: Optional[str] = None
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    log_level: str = "INFO"
    rest_host: str = "0.0.0.0"
    rest_port: int = Field(default=8000, ge=1, le=65535)
    max_workers: int = Field(default=1, ge=1)
    random_seed: Optional[int] = None

    @field_validator("base_url", mode="before")
    @classmethod
    def strip_trailing_slash(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().rstrip("/")
        return value

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().upper()
        return value

    @model_validator(mode="after")
    def check_remote_settings(self) -> 'PeerEvalConfig':
        if self.store_type == "remote" and not self.project_id:
            raise ValueError("project_id is required when store_type is 'remote'")
        return self

    @property
    def store_url(self) -> str:
        """Base URL of the record store for this project."""
        return f"{self.base_url}/{self.project_id}"


def load_config(path: Optional[str] = None, env: Optional[Mapping[str, str]] = None,
                overrides: Optional[Dict[str, Any]] = None) -> PeerEvalConfig:
    """Load configuration from an optional JSON file, then apply env overrides."""
    data: Dict[str, Any] = {}
    if path:
        try:
            with open(path, 'r') as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise ConfigurationError(
                f"Could not read configuration file {path}: {e}",
                details={'path': path}
            ) from e
        if not isinstance(data, dict):
            raise ConfigurationError(
                f"Configuration file {path} must contain a JSON object",
                details={'path': path}
            )

    environ = os.environ if env is None else env
    for variable, field_name in ENV_OVERRIDES.items():
        value = environ.get(variable)
        if value:
            data[field_name] = value

    if overrides:
        data.update({key: value for key, value in overrides.items() if value is not None})

    try:
        return PeerEvalConfig(**data)
    except PydanticValidationError as e:
        raise ConfigurationError(
            f"Invalid configuration: {e}",
            details={'errors': e.errors(include_url=False)}
        ) from e
