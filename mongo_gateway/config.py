"""Settings loaded from the process environment."""

import os
from collections.abc import Mapping

from pydantic import BaseModel, Field, field_validator

_ENV_VARS = {
    "mongo_uri": "MONGO_URI",
    "mongo_db_name": "MONGO_DB_NAME",
    "api_key": "API_KEY",
    "host": "HOST",
    "port": "PORT",
    "server_selection_timeout_ms": "SERVER_SELECTION_TIMEOUT_MS",
    "socket_timeout_ms": "SOCKET_TIMEOUT_MS",
    "retry_delay_seconds": "RETRY_DELAY_SECONDS",
    "shutdown_timeout_seconds": "SHUTDOWN_TIMEOUT_SECONDS",
    "max_body_bytes": "MAX_BODY_BYTES",
    "allow_query_api_key": "ALLOW_QUERY_API_KEY",
    "expose_driver_errors": "EXPOSE_DRIVER_ERRORS",
    "log_level": "LOG_LEVEL",
}


class Settings(BaseModel):
    mongo_uri: str = "mongodb://localhost:27017"
    mongo_db_name: str = "quantconnect"
    api_key: str = ""
    host: str = "0.0.0.0"
    port: int = Field(3000, ge=1, le=65535)
    server_selection_timeout_ms: int = Field(10000, ge=1)
    socket_timeout_ms: int = Field(45000, ge=1)
    retry_delay_seconds: float = Field(5.0, gt=0)
    shutdown_timeout_seconds: int = Field(10, ge=0)
    max_body_bytes: int = Field(50 * 1024 * 1024, ge=1)
    allow_query_api_key: bool = False
    expose_driver_errors: bool = True
    log_level: str = "INFO"

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, v):
        return v.upper()


def load_settings(environ: Mapping[str, str] | None = None) -> Settings:
    """Build Settings from environment variables, ignoring unset ones."""
    if environ is None:
        environ = os.environ
    values = {
        field: environ[var]
        for field, var in _ENV_VARS.items()
        if environ.get(var, "") != ""
    }
    return Settings(**values)
