"""
Sync core — resolve repositories, rewrite URLs, clone or fetch mirrors.
"""

from .mirror import MirrorSynchronizer
from .process import ProcessResult, ProcessRunner
from .resolver import RepositoryResolver
from .updater import UpdateOrchestrator
from .urls import EffectiveLocation, redact_url, rewrite

__all__ = [
    "EffectiveLocation",
    "MirrorSynchronizer",
    "ProcessResult",
    "ProcessRunner",
    "RepositoryResolver",
    "UpdateOrchestrator",
    "redact_url",
    "rewrite",
]
