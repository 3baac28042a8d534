"""Editor configuration loading.

Settings come from ``questcanvas.yaml`` (or the file passed with
``--config``), then environment variables override them:

- ``QC_API_URL``: quest editor backend; when set, quests are loaded over HTTP
- ``QC_DATA_DIR``: reference data directory
- ``QC_SETTLE_MS``: debounce window in milliseconds
- ``QC_LOCALE``: display locale
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

from ruamel.yaml import YAML

CONFIG_FILENAME = "questcanvas.yaml"

DEFAULT_SETTLE_MS = 100
DEFAULT_LOCALE = "en-US"
DEFAULT_HISTORY_LIMIT = 50


class ConfigError(Exception):
    """Raised when the editor configuration cannot be loaded."""

    def __init__(self, path: Path | None, reason: str) -> None:
        self.path = path
        self.reason = reason
        where = f" at {path}" if path is not None else ""
        super().__init__(f"Failed to load editor config{where}: {reason}")


@dataclass
class EditorConfig:
    """Editor settings.

    Attributes:
        api_url: Backend URL. None means work on local files.
        data_dir: Directory with the reference data YAML lists.
        quests_dir: Directory searched for quest files.
        metadata_db: SQLite file holding node positions.
        settle_ms: Debounce window in milliseconds.
        locale: Locale used for display labels.
        history_limit: Maximum undo depth.
    """

    api_url: str | None = None
    data_dir: Path = field(default_factory=lambda: Path("data"))
    quests_dir: Path = field(default_factory=lambda: Path("quests"))
    metadata_db: Path = field(default_factory=lambda: Path("editor.db"))
    settle_ms: int = DEFAULT_SETTLE_MS
    locale: str = DEFAULT_LOCALE
    history_limit: int = DEFAULT_HISTORY_LIMIT

    @property
    def settle_delay(self) -> float:
        """Debounce window in seconds."""
        return self.settle_ms / 1000

    @classmethod
    def from_dict(cls, data: dict[str, Any], base_dir: Path | None = None) -> EditorConfig:
        """Create config from a dictionary.

        Args:
            data: Parsed config file contents.
            base_dir: Directory relative paths are resolved against.

        Returns:
            EditorConfig instance.
        """
        defaults = cls()

        def _path(key: str, default: Path) -> Path:
            raw = data.get(key)
            path = Path(raw) if raw else default
            if base_dir is not None and not path.is_absolute():
                path = base_dir / path
            return path

        return cls(
            api_url=data.get("api_url") or None,
            data_dir=_path("data_dir", defaults.data_dir),
            quests_dir=_path("quests_dir", defaults.quests_dir),
            metadata_db=_path("metadata_db", defaults.metadata_db),
            settle_ms=int(data.get("settle_ms", DEFAULT_SETTLE_MS)),
            locale=str(data.get("locale", DEFAULT_LOCALE)),
            history_limit=int(data.get("history_limit", DEFAULT_HISTORY_LIMIT)),
        )

    def with_env_overrides(self) -> EditorConfig:
        """Return a copy with ``QC_*`` environment variables applied.

        Raises:
            ConfigError: If ``QC_SETTLE_MS`` is not an integer.
        """
        overrides: dict[str, Any] = {}
        if api_url := os.getenv("QC_API_URL"):
            overrides["api_url"] = api_url
        if data_dir := os.getenv("QC_DATA_DIR"):
            overrides["data_dir"] = Path(data_dir)
        if settle_ms := os.getenv("QC_SETTLE_MS"):
            try:
                overrides["settle_ms"] = int(settle_ms)
            except ValueError as e:
                msg = f"QC_SETTLE_MS must be an integer, got {settle_ms!r}"
                raise ConfigError(None, msg) from e
        if locale := os.getenv("QC_LOCALE"):
            overrides["locale"] = locale
        return replace(self, **overrides)

    def check(self) -> None:
        """Reject out-of-range values.

        Raises:
            ConfigError: If a value is out of range.
        """
        if self.settle_ms < 0:
            raise ConfigError(None, f"settle_ms must be >= 0, got {self.settle_ms}")
        if self.history_limit < 1:
            raise ConfigError(None, f"history_limit must be >= 1, got {self.history_limit}")


def load_config(config_path: Path | None = None) -> EditorConfig:
    """Load the editor configuration.

    Args:
        config_path: Explicit config file. When None, ``questcanvas.yaml`` in
            the working directory is used if present, else defaults.

    Returns:
        EditorConfig with environment overrides applied.

    Raises:
        ConfigError: If an explicit file is missing, or any file is
            unreadable or invalid.
    """
    if config_path is None:
        candidate = Path.cwd() / CONFIG_FILENAME
        config = _read_config_file(candidate) if candidate.exists() else EditorConfig()
    elif not config_path.exists():
        raise ConfigError(config_path, "File not found")
    else:
        config = _read_config_file(config_path)

    config = config.with_env_overrides()
    config.check()
    return config


def _read_config_file(config_path: Path) -> EditorConfig:
    yaml = YAML()
    try:
        with config_path.open("r", encoding="utf-8") as f:
            data = yaml.load(f)

        if data is None:
            return EditorConfig()
        if not isinstance(data, dict):
            raise ConfigError(config_path, "Top level must be a mapping")

        return EditorConfig.from_dict(dict(data), base_dir=config_path.parent)
    except Exception as e:
        if isinstance(e, ConfigError):
            raise
        raise ConfigError(config_path, str(e)) from e
