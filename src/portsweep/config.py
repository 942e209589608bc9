"""Application configuration via pydantic-settings."""

from __future__ import annotations

import json
from pydantic import field_validator
from pydantic_settings import BaseSettings

COMMON_PORTS = [
    21, 22, 23, 25, 53, 80, 110, 143, 443, 445, 993, 995,
    1433, 3306, 3389, 5432, 5900, 6379, 8080, 8443, 27017,
]


class Settings(BaseSettings):
    model_config = {"env_prefix": "PORTSWEEP_", "case_sensitive": False}

    # Scan defaults
    default_ports: list[int] = COMMON_PORTS
    port_timeout_ms: int = 300
    ping_timeout_ms: int = 500
    max_host_concurrency: int = 50
    max_port_concurrency: int = 100
    ping_first: bool = True
    skip_offline_hosts: bool = False
    grab_banners: bool = False

    # Target resolution
    max_cidr_hosts: int = 65536

    # Banner grabbing
    banner_io_timeout_ms: int = 500
    banner_grace_ms: int = 100

    # Liveness
    ping_command: str | None = None

    # Logging
    log_level: str = "WARNING"

    # API
    cors_origins: list[str] = ["http://localhost:3000"]
    max_tracked_scans: int = 100

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors(cls, v: str | list[str]) -> list[str]:
        if isinstance(v, str):
            return json.loads(v)
        return v


settings = Settings()
