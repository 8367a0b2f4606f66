"""Configuration module — frozen dataclass loaded from environment variables.

An optional YAML file (``CONFIG_PATH``) supplies defaults underneath the
environment; environment variables always win.
"""

import os
from dataclasses import dataclass
from typing import Optional

import yaml

# config key -> environment variable
ENV_VARS = {
    "host": "HOST",
    "port": "PORT",
    "log_file": "LOGFILE",
    "log_level": "LOG_LEVEL",
    "max_workers": "MAX_WORKERS",
    "shutdown_grace": "SHUTDOWN_GRACE",
    "waf_header": "WAF_HEADER",
}


@dataclass(frozen=True)
class Config:
    host: str = "0.0.0.0"
    port: int = 9000
    log_file: str = "/var/log/envoy/access.log"
    log_level: str = "info"
    max_workers: int = 64
    shutdown_grace: Optional[float] = None
    waf_header: str = "x-waf-violation"

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"


def load_yaml(path: str) -> dict:
    """Load the YAML config at *path*; an empty file yields an empty dict."""
    with open(path, "r") as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as exc:
            raise ValueError(f"{path}: invalid YAML: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: expected a mapping at the top level")
    return data


def _parse_grace(value) -> Optional[float]:
    if value is None:
        return None
    value = str(value).strip()
    if not value:
        return None
    return float(value)


def load_config() -> Config:
    """Build Config from environment variables with sensible defaults."""
    raw = {}
    config_path = os.environ.get("CONFIG_PATH")
    if config_path:
        file_values = load_yaml(config_path)
        raw.update({k: v for k, v in file_values.items() if k in ENV_VARS})

    # empty variables count as unset
    for key, env_var in ENV_VARS.items():
        value = os.environ.get(env_var)
        if value:
            raw[key] = value

    return Config(
        host=str(raw.get("host", Config.host)),
        port=int(raw.get("port", Config.port)),
        log_file=str(raw.get("log_file", Config.log_file)),
        log_level=str(raw.get("log_level", Config.log_level)),
        max_workers=int(raw.get("max_workers", Config.max_workers)),
        shutdown_grace=_parse_grace(raw.get("shutdown_grace")),
        waf_header=str(raw.get("waf_header", Config.waf_header)).lower(),
    )
