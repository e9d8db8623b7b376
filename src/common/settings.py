from __future__ import annotations

import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

DEFAULT_CONFIG_PATH = Path("configs/deploy-manager.yaml")
DEFAULT_KUBECONFIG = Path.home() / ".kube" / "config"


@dataclass(frozen=True)
class Settings:
    jobmanager_url: str = ""
    kubeconfig: Optional[str] = None
    apply_timeout_seconds: float = 5.0
    poll_interval_seconds: float = 0.5
    monitor_interval_seconds: float = 30.0
    monitor_timeout_seconds: float = 600.0
    http_timeout_seconds: float = 30.0
    clamp_replicas: bool = True
    host: str = "0.0.0.0"
    port: int = 8083
    log_level: str = "INFO"

    @property
    def kubeconfig_path(self) -> Path:
        if self.kubeconfig:
            return Path(self.kubeconfig).expanduser()
        return DEFAULT_KUBECONFIG

    @classmethod
    def from_env(cls, base: Optional["Settings"] = None) -> "Settings":
        settings = base or cls()
        overrides: Dict[str, Any] = {}
        env_map = {
            "JOBMANAGER_URL": "jobmanager_url",
            "KUBECONFIG": "kubeconfig",
            "DEPLOY_MANAGER_APPLY_TIMEOUT": "apply_timeout_seconds",
            "DEPLOY_MANAGER_POLL_INTERVAL": "poll_interval_seconds",
            "DEPLOY_MANAGER_MONITOR_INTERVAL": "monitor_interval_seconds",
            "DEPLOY_MANAGER_MONITOR_TIMEOUT": "monitor_timeout_seconds",
            "DEPLOY_MANAGER_HTTP_TIMEOUT": "http_timeout_seconds",
            "DEPLOY_MANAGER_CLAMP_REPLICAS": "clamp_replicas",
            "DEPLOY_MANAGER_HOST": "host",
            "DEPLOY_MANAGER_PORT": "port",
            "DEPLOY_MANAGER_LOG_LEVEL": "log_level",
        }
        for env_name, field_name in env_map.items():
            value = os.getenv(env_name)
            if value is None or value == "":
                continue
            overrides[field_name] = value
        return _apply_overrides(settings, overrides)


def load_settings(config_path: Optional[Path] = None) -> Settings:
    """Build settings from the optional YAML file, then environment variables."""

    settings = Settings()
    path = config_path or DEFAULT_CONFIG_PATH
    if path.exists():
        with path.open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
        if not isinstance(data, dict):
            raise ValueError(f"{path} must contain a mapping")
        section = data.get("deploy_manager", data)
        if not isinstance(section, dict):
            raise ValueError(f"{path}: deploy_manager section must be a mapping")
        settings = _apply_overrides(settings, section)
    return Settings.from_env(settings)


def _apply_overrides(settings: Settings, overrides: Dict[str, Any]) -> Settings:
    known = {f.name: f for f in fields(Settings)}
    coerced: Dict[str, Any] = {}
    for key, value in overrides.items():
        if key not in known:
            continue
        default = getattr(settings, key)
        coerced[key] = _coerce(value, default)
    return replace(settings, **coerced)


def _coerce(value: Any, default: Any) -> Any:
    if isinstance(default, bool):
        if isinstance(value, str):
            return value.strip().lower() in {"1", "true", "yes", "on"}
        return bool(value)
    if isinstance(default, float):
        return float(value)
    if isinstance(default, int):
        return int(value)
    return None if value is None else str(value)


__all__ = ["DEFAULT_CONFIG_PATH", "DEFAULT_KUBECONFIG", "Settings", "load_settings"]
