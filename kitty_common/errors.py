"""
Error taxonomy for the composition launcher.

Every error raised by the controller derives from KittyError so that the
command queue and the HTTP layer can catch the whole family at their
boundaries while still telling the cases apart.
"""


class KittyError(RuntimeError):
    """Base class for all launcher errors."""


class ProcessLaunchFailure(KittyError):
    """An external process could not be started at all."""

    def __init__(self, argv: list[str], reason: str):
        self.argv = list(argv)
        self.reason = reason
        super().__init__(f"Failed to launch {' '.join(argv)}: {reason}")


class ProcessNonZeroExit(KittyError):
    """An external process ran but signaled failure."""

    def __init__(self, argv: list[str], returncode: int, message: str = ""):
        self.argv = list(argv)
        self.returncode = returncode
        prefix = f"{message}: " if message else ""
        super().__init__(
            f"{prefix}{' '.join(argv)} exited with code {returncode}"
        )


class ProcessInterrupted(KittyError):
    """A bounded wait for an external process elapsed; the process was killed."""

    def __init__(self, argv: list[str], timeout: float):
        self.argv = list(argv)
        self.timeout = timeout
        super().__init__(
            f"{' '.join(argv)} did not finish within {timeout:g}s and was killed"
        )


class FetchFailure(KittyError):
    """A source-control step of an artifact fetch failed."""


class ManifestEmpty(KittyError):
    """The parsed catalog has no compositions or no versions."""


class ManifestParseFailure(KittyError):
    """The manifest bytes are not a valid catalog document."""


class ScratchDirFailure(KittyError):
    """An ephemeral working directory could not be created or removed."""


class SelectionMissing(KittyError):
    """An action needs a composition/version or container selection that is absent."""


class SelectionConflict(KittyError):
    """A start was attempted while a session is already active."""


class FeatureDisabled(KittyError):
    """Start/stop is unavailable because the session working directory is missing."""


class QueueClosed(KittyError):
    """The command queue no longer accepts submissions."""
