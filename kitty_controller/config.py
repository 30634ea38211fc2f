"""
Launcher configuration.

Settings come from command-line arguments (see __main__), then environment
variables, then defaults.

Environment variables:
    KITTY_DEV_MODE: Use bundled fixtures instead of the remote repository (1/true/yes)
    KITTY_REPO_URL: Compositions repository URL
    KITTY_BRANCH: Branch whose head is read (default: main)
    KITTY_POLL_INTERVAL: Seconds between container polls (default: 5.0)
    KITTY_DOCKER: docker executable (default: docker)
    KITTY_GIT: git executable (default: git)
    KITTY_COLLECT_MEMORY: Read per-container memory usage on each poll (1/true/yes)
    KITTY_GRACE_PERIOD: Seconds to wait for the running command at shutdown (default: 10.0)
    KITTY_SCRATCH_ROOT: Parent directory for working and scratch directories
"""

import logging
import os
from dataclasses import dataclass

logger = logging.getLogger(__name__)

DEFAULT_REPO_URL = "git@gitlab.com:container-kitty/compositions.git"
DEFAULT_BRANCH = "main"
DEFAULT_POLL_INTERVAL = 5.0
DEFAULT_GRACE_PERIOD = 10.0

_TRUE_VALUES = {"1", "true", "yes", "on"}


def env_flag(name: str, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in _TRUE_VALUES


def env_positive_float(name: str, default: float) -> float:
    """
    Read a positive float from the environment.

    Invalid or non-positive values are logged and replaced by the default.
    """
    raw = os.environ.get(name)
    if raw is None:
        return default
    try:
        value = float(raw)
    except ValueError:
        logger.warning(f"Invalid {name}={raw}, using default {default}")
        return default
    if value <= 0:
        logger.warning(f"Invalid {name}={value}, using default {default}")
        return default
    return value


@dataclass
class LauncherConfig:
    """Everything the launcher needs to know at startup."""

    dev_mode: bool = False
    repo_url: str = DEFAULT_REPO_URL
    branch: str = DEFAULT_BRANCH
    poll_interval: float = DEFAULT_POLL_INTERVAL
    docker: str = "docker"
    git: str = "git"
    collect_memory: bool = False
    grace_period: float = DEFAULT_GRACE_PERIOD
    scratch_root: str | None = None

    @classmethod
    def from_env(cls) -> "LauncherConfig":
        """Build a configuration from KITTY_* environment variables."""
        return cls(
            dev_mode=env_flag("KITTY_DEV_MODE"),
            repo_url=os.environ.get("KITTY_REPO_URL", DEFAULT_REPO_URL),
            branch=os.environ.get("KITTY_BRANCH", DEFAULT_BRANCH),
            poll_interval=env_positive_float("KITTY_POLL_INTERVAL", DEFAULT_POLL_INTERVAL),
            docker=os.environ.get("KITTY_DOCKER", "docker"),
            git=os.environ.get("KITTY_GIT", "git"),
            collect_memory=env_flag("KITTY_COLLECT_MEMORY"),
            grace_period=env_positive_float("KITTY_GRACE_PERIOD", DEFAULT_GRACE_PERIOD),
            scratch_root=os.environ.get("KITTY_SCRATCH_ROOT") or None,
        )
