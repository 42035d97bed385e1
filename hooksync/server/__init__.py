"""
Hook Server — HTTP endpoint for GitHub push notifications.

Usage:
    python -m hooksync.server
    python -m hooksync.server --port 8000
"""

from .app import create_app, run_server

__all__ = ["create_app", "run_server"]
