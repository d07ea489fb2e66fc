from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Optional

from buildverify import config
from buildverify.common.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

ENV_PREFIX = "BUILDVERIFY_"

ENGINES = ("auto", "podman", "docker")


class Settings:
    """User settings: defaults, then a JSON file, then BUILDVERIFY_* variables."""

    def __init__(self, config_file: Path | str | None = None, environ: Optional[dict] = None):
        self.config_path = Path(config_file) if config_file else Path(config.SETTINGS_FILENAME)
        self._explicit = config_file is not None
        self._environ = os.environ if environ is None else environ
        self.values: dict[str, Any] = {}
        self.load()

    @staticmethod
    def defaults() -> dict[str, Any]:
        return {
            "container_engine": "auto",
            "engine_preference": list(config.ENGINE_PREFERENCE),
            "workspace_root": config.WORKSPACE_DEFAULT,
            "clone_attempts": config.CLONE_ATTEMPTS,
            "clone_retry_delay": config.CLONE_RETRY_DELAY,
            "download_retries": config.DOWNLOAD_RETRIES,
            "download_timeout": config.DOWNLOAD_TIMEOUT,
            "keep_workspace": True,
        }

    def load(self) -> None:
        """Load settings from disk and the environment, merged over defaults."""
        self.values = self.defaults()

        if self.config_path.exists():
            try:
                with open(self.config_path, "r", encoding="utf-8") as f:
                    stored = json.load(f)
            except (OSError, json.JSONDecodeError) as e:
                raise ConfigurationError(
                    f"Cannot read settings file {self.config_path}: {e}"
                ) from e
            if not isinstance(stored, dict):
                raise ConfigurationError(f"Settings file {self.config_path} must hold a JSON object")
            unknown = sorted(set(stored) - set(self.values))
            if unknown:
                logger.warning("Ignoring unknown settings: %s", ", ".join(unknown))
            self.values.update({k: v for k, v in stored.items() if k in self.values})
        elif self._explicit:
            raise ConfigurationError(f"Settings file not found: {self.config_path}")

        for key, default in self.defaults().items():
            raw = self._environ.get(ENV_PREFIX + key.upper())
            if raw is not None:
                self.values[key] = _coerce(key, raw, default)

        self._validate()

    def _validate(self) -> None:
        engine = str(self.values["container_engine"]).lower()
        if engine not in ENGINES:
            raise ConfigurationError(
                f"container_engine must be one of {', '.join(ENGINES)}, got {engine!r}"
            )
        self.values["container_engine"] = engine
        if int(self.values["clone_attempts"]) < 1:
            raise ConfigurationError("clone_attempts must be at least 1")
        if int(self.values["download_retries"]) < 0:
            raise ConfigurationError("download_retries must not be negative")

    def save(self) -> None:
        with open(self.config_path, "w", encoding="utf-8") as f:
            json.dump(self.values, f, indent=4, ensure_ascii=False)

    def get(self, key: str, default: Any = None) -> Any:
        return self.values.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self.values[key] = value

    @property
    def container_engine(self) -> str:
        return self.values["container_engine"]

    @property
    def engine_preference(self) -> tuple[str, ...]:
        return tuple(self.values["engine_preference"])

    @property
    def workspace_root(self) -> Path:
        return Path(self.values["workspace_root"])

    @property
    def clone_attempts(self) -> int:
        return int(self.values["clone_attempts"])

    @property
    def clone_retry_delay(self) -> float:
        return float(self.values["clone_retry_delay"])

    @property
    def download_retries(self) -> int:
        return int(self.values["download_retries"])

    @property
    def download_timeout(self) -> float:
        return float(self.values["download_timeout"])

    @property
    def keep_workspace(self) -> bool:
        return bool(self.values["keep_workspace"])


def _coerce(key: str, raw: str, default: Any) -> Any:
    """Convert an environment string to the type of the default value."""
    try:
        if isinstance(default, bool):
            return raw.strip().lower() in ("1", "true", "yes", "on")
        if isinstance(default, int):
            return int(raw)
        if isinstance(default, float):
            return float(raw)
        if isinstance(default, list):
            return [part.strip() for part in raw.split(",") if part.strip()]
    except ValueError as e:
        raise ConfigurationError(f"Invalid value for {ENV_PREFIX}{key.upper()}: {raw!r}") from e
    return raw
