"""
ConfigManager: YAML-backed tunables with dot-notation access for Scorekeep.

Purpose
-------
- Provide hierarchical, dot-notation access to leaderboard and retention
  tunables (e.g. ``"retention.max_rows.game_records"``).
- Back configuration with YAML defaults from the ``config/`` directory,
  deep-merged so each concern can live in its own file.

Key Design Decisions
--------------------
- YAML is the single source for category rules and table caps; environment
  scalars stay in ``Config``.
- One instance is built at process start and injected into services.
- A missing directory or an unreadable file degrades to built-in defaults
  with a warning instead of aborting startup.
"""

from __future__ import annotations

import copy
from pathlib import Path
from typing import Any, Dict, Mapping, MutableMapping, Optional

import yaml

from scorekeep.core.logging.logger import get_logger

logger = get_logger(__name__)

# Used when no YAML file provides a value
BUILTIN_DEFAULTS: Dict[str, Any] = {
    "leaderboards": {
        "default_order": "desc",
        "categories": [],
    },
    "retention": {
        "zombie_guard_table": "player_profiles",
        "max_rows": {
            "game_records": 50000,
            "player_profiles": 10000,
            "share_rewards": 10000,
        },
    },
}


class ConfigManager:
    """
    Dot-notation configuration over merged YAML defaults.

    Usage
    -----
    >>> manager = ConfigManager.from_directory(Path("config"))
    >>> manager.get("leaderboards.categories", default={})
    """

    def __init__(self, defaults: Optional[Mapping[str, Any]] = None) -> None:
        self._values: Dict[str, Any] = copy.deepcopy(dict(defaults or {}))

    @staticmethod
    def _deep_merge_dict(
        target: MutableMapping[str, Any],
        source: Mapping[str, Any],
    ) -> None:
        """Recursively merge `source` into `target` (in-place)."""
        for key, value in source.items():
            if isinstance(value, dict) and isinstance(target.get(key), dict):
                ConfigManager._deep_merge_dict(target[key], value)
            else:
                target[key] = value

    @classmethod
    def from_directory(cls, config_dir: Path) -> "ConfigManager":
        """
        Load every ``*.yaml`` / ``*.yml`` file under `config_dir`.

        Files are merged in sorted path order so later files override
        earlier ones deterministically.
        """
        manager = cls(BUILTIN_DEFAULTS)

        if not config_dir.exists():
            logger.warning(
                "Config directory not found; using built-in defaults only",
                extra={"config_dir": str(config_dir)},
            )
            return manager

        yaml_files = sorted(
            list(config_dir.rglob("*.yaml")) + list(config_dir.rglob("*.yml"))
        )
        loaded_count = 0

        for yaml_file in yaml_files:
            try:
                with yaml_file.open("r", encoding="utf-8") as handle:
                    data = yaml.safe_load(handle)
            except (OSError, yaml.YAMLError) as exc:
                logger.warning(
                    "Failed to load YAML config",
                    extra={
                        "file": str(yaml_file),
                        "error": str(exc),
                        "error_type": type(exc).__name__,
                    },
                )
                continue

            if isinstance(data, dict):
                cls._deep_merge_dict(manager._values, data)
                loaded_count += 1
            elif data is not None:
                logger.warning(
                    "Ignoring non-dict YAML root object",
                    extra={"file": str(yaml_file), "root_type": type(data).__name__},
                )

        logger.info(
            "YAML configs loaded",
            extra={
                "yaml_file_count": loaded_count,
                "top_level_keys": sorted(manager._values.keys()),
            },
        )
        return manager

    def get(self, key: str, default: Any = None) -> Any:
        """
        Resolve a dot-notation key.

        Returns a deep copy for container values so callers cannot mutate
        the shared configuration.
        """
        node: Any = self._values
        for part in key.split("."):
            if not isinstance(node, Mapping) or part not in node:
                return default
            node = node[part]
        if isinstance(node, (dict, list)):
            return copy.deepcopy(node)
        return node

    def set(self, key: str, value: Any) -> None:
        """Override a single key in memory (tests and admin tooling)."""
        parts = key.split(".")
        node = self._values
        for part in parts[:-1]:
            child = node.get(part)
            if not isinstance(child, dict):
                child = {}
                node[part] = child
            node = child
        node[parts[-1]] = value
