"""
Kitty Common module.

This module contains shared domain models and the error taxonomy used across
the launcher components (controller, server, client).

The common module has no dependencies on other kitty_* modules, making it
a pure domain layer that can be imported by any component.
"""

from .errors import (
    FeatureDisabled,
    FetchFailure,
    KittyError,
    ManifestEmpty,
    ManifestParseFailure,
    ProcessInterrupted,
    ProcessLaunchFailure,
    ProcessNonZeroExit,
    QueueClosed,
    ScratchDirFailure,
    SelectionConflict,
    SelectionMissing,
)
from .models import (
    Composition,
    CompositionVersion,
    ContainerRecord,
    ManifestSnapshot,
    SessionSnapshot,
    SessionState,
    Version,
)

__all__ = [
    "Composition",
    "CompositionVersion",
    "ContainerRecord",
    "FeatureDisabled",
    "FetchFailure",
    "KittyError",
    "ManifestEmpty",
    "ManifestParseFailure",
    "ManifestSnapshot",
    "ProcessInterrupted",
    "ProcessLaunchFailure",
    "ProcessNonZeroExit",
    "QueueClosed",
    "ScratchDirFailure",
    "SelectionConflict",
    "SelectionMissing",
    "SessionSnapshot",
    "SessionState",
    "Version",
]
