"""
Configuration for state containers.

Load settings from JSON or YAML files, or from TREESTATE_* environment
variables, instead of wiring storage and logging by hand.
"""
from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass
from typing import Any, Dict, Mapping, Optional

import yaml

from .adapt import CreatedState, create_state
from .core.store import DEFAULT_NAMESPACE
from .logging_config import configure_logging, log_actions
from .storage import Backend, FileBackend, MemoryBackend

logger = logging.getLogger(__name__)

STORAGE_KINDS = ("none", "memory", "file")

ENV_PREFIX = "TREESTATE_"

_TRUTHY = {"1", "true", "yes", "on"}


class ConfigError(ValueError):
    """Raised for invalid or unreadable configuration."""
    pass


@dataclass
class StateConfig:
    """
    Settings for a state container.

    Attributes:
        namespace: Channel name and storage key
        storage: Where snapshots go: none, memory or file
        storage_dir: Directory for file storage
        log_level: Log level (DEBUG, INFO, WARNING, ERROR)
        log_dir: Directory for log files, console only if unset
        log_actions: Log every action event at INFO
    """
    namespace: str = DEFAULT_NAMESPACE
    storage: str = "none"
    storage_dir: str = "./state"
    log_level: str = "INFO"
    log_dir: Optional[str] = None
    log_actions: bool = False

    def __post_init__(self):
        if self.storage not in STORAGE_KINDS:
            raise ConfigError(
                f"Unknown storage {self.storage!r}, expected one of {', '.join(STORAGE_KINDS)}"
            )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "StateConfig":
        """Create from dictionary, ignoring unknown keys."""
        return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})

    def save(self, path: str) -> None:
        """Save config to JSON file."""
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(self.to_dict(), f, indent=2)

    @classmethod
    def load(cls, path: str) -> Optional["StateConfig"]:
        """
        Load config from a JSON or YAML file.

        Returns:
            StateConfig, or None if the file does not exist

        Raises:
            ConfigError: If the file cannot be parsed
        """
        if not os.path.exists(path):
            return None

        with open(path, "r", encoding="utf-8") as f:
            content = f.read()

        try:
            if path.endswith((".yaml", ".yml")):
                data = yaml.safe_load(content)
            else:
                data = json.loads(content)
        except (ValueError, yaml.YAMLError) as e:
            raise ConfigError(f"Failed to parse config {path}: {e}") from e

        if not isinstance(data, Mapping):
            raise ConfigError(f"Config {path} must contain a mapping")

        logger.debug(f"Loaded config from {path}")
        return cls.from_dict(data)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "StateConfig":
        """
        Create from TREESTATE_* environment variables.

        Example:
            TREESTATE_NAMESPACE=todo TREESTATE_STORAGE=file
        """
        environ = os.environ if environ is None else environ
        data: Dict[str, Any] = {}
        for name in cls.__dataclass_fields__:
            raw = environ.get(f"{ENV_PREFIX}{name.upper()}")
            if raw is None:
                continue
            data[name] = raw.strip().lower() in _TRUTHY if name == "log_actions" else raw
        return cls.from_dict(data)

    def build_storage(self) -> Optional[Backend]:
        """Create the configured storage backend."""
        if self.storage == "file":
            return FileBackend(self.storage_dir)
        if self.storage == "memory":
            return MemoryBackend()
        return None

    def configure_logging(self) -> None:
        """Apply the configured log level and files."""
        configure_logging(level=self.log_level, log_dir=self.log_dir)

    def create_state(self, tree: Mapping) -> CreatedState:
        """Adapt a tree and initialize its state with these settings."""
        created = create_state(tree, self.namespace, self.build_storage())
        if self.log_actions:
            log_actions(created.actions.stream)
        return created
