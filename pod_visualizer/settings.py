"""
settings.py

Environment-driven configuration for the CLI and the web server.

Env vars (all prefixed with PV_):
- PV_KUBECONFIG                (default: in-cluster, then ~/.kube/config)
- PV_HOST                      (default: 0.0.0.0)
- PV_PORT                      (default: 8080)
- PV_FALLBACK_INTERVAL         (default: 10)
- PV_WATCH_RETRY_DELAY         (default: 5)
- PV_WATCH_RESTART_DELAY       (default: 1)
- PV_WATCH_TIMEOUT_SECONDS     (default: 300)
- PV_READINESS_TIMEOUT         (default: 5)
- PV_REQUEST_TIMEOUT           (default: 30)
- PV_QUEUE_SIZE                (default: 256)
- PV_SUBSCRIBER_BUFFER         (default: 16)
- PV_JSON_LOGS                 (default: false)
- PV_LOG_LEVEL                 (default: INFO)
"""

import logging
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class VisualizerSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="PV_")

    kubeconfig: Optional[str] = None
    host: str = "0.0.0.0"
    port: int = 8080
    fallback_interval: float = 10.0
    watch_retry_delay: float = 5.0
    watch_restart_delay: float = 1.0
    watch_timeout_seconds: int = 300
    readiness_timeout: float = 5.0
    request_timeout: float = 30.0
    queue_size: int = 256
    subscriber_buffer: int = 16
    json_logs: bool = False
    log_level: str = "INFO"

    @field_validator(
        "port",
        "fallback_interval",
        "watch_retry_delay",
        "watch_restart_delay",
        "watch_timeout_seconds",
        "readiness_timeout",
        "request_timeout",
        "queue_size",
        "subscriber_buffer",
    )
    @classmethod
    def must_be_positive(cls, v):
        if v <= 0:
            raise ValueError("must be greater than zero")
        return v

    @field_validator("kubeconfig")
    @classmethod
    def blank_means_default(cls, v: Optional[str]) -> Optional[str]:
        if v is None or not v.strip():
            return None
        return v.strip()

    @field_validator("log_level")
    @classmethod
    def known_level(cls, v: str) -> str:
        level = v.strip().upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"unknown log level {v!r}")
        return level
