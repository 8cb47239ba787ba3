"""
Scorekeep: bounded leaderboards and policy-driven data retention.

Wire everything through ``scorekeep.container.ServiceContainer``.
"""

__version__ = "0.1.0"
