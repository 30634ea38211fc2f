"""
Kitty Controller module.

This module contains the launcher core: the process runner, the git-based
artifact fetcher, the serialized command queue, the compose session, the
manifest catalog and the container state reconciler.

The controller runs inside the API server process (see __main__) but has
no dependency on the HTTP layer.
"""

from .artifact_fetcher import ArtifactFetcher
from .command_queue import CommandQueue
from .config import LauncherConfig
from .container_manager import ContainerEngine
from .launcher import Launcher
from .manifest import ManifestCatalog
from .process_runner import ProcessRunner
from .reconciler import ContainerStateReconciler
from .session import ComposeSession, derive_project_id
from .status import summarize

__all__ = [
    "ArtifactFetcher",
    "CommandQueue",
    "ComposeSession",
    "ContainerEngine",
    "ContainerStateReconciler",
    "Launcher",
    "LauncherConfig",
    "ManifestCatalog",
    "ProcessRunner",
    "derive_project_id",
    "summarize",
]
