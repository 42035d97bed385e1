"""
Configuration — settings file + environment overrides.
"""

from .settings import HookSettings

__all__ = ["HookSettings"]
