"""Convergence engine: scope, resolution, install dispatch and removal."""

from .configurator import Configurator, ProjectHookRunner, SyncReport
from .scope import SyncScope

__all__ = ["Configurator", "ProjectHookRunner", "SyncReport", "SyncScope"]
