"""
Scorekeep configuration

- Config: static, environment-driven settings (database, logging, tunables)
- ConfigManager (scorekeep.core.config.manager): YAML-backed category rules
  and retention caps; imported from its module because it depends on the
  logging subsystem, which itself reads Config.
"""

from scorekeep.core.config.config import Config, Environment

__all__ = ["Config", "Environment"]
