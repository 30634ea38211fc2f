"""
Launcher facade wiring the controller components together.

The launcher owns the command queue, the compose session, the manifest
catalog and the container reconciler. User requests (from the HTTP API) are
turned into queue tasks here; the session is only ever touched from inside
those tasks. Failures of user-requested tasks become notifications.
"""

import asyncio
import logging
import tempfile
from collections import deque
from dataclasses import dataclass, field
from datetime import UTC, datetime
from itertools import count
from pathlib import Path
from typing import Any

from kitty_common.errors import FeatureDisabled, ScratchDirFailure, SelectionMissing
from kitty_common.models import CompositionVersion, SessionSnapshot

from .artifact_fetcher import ArtifactFetcher, remove_tree
from .command_queue import CommandQueue
from .config import LauncherConfig
from .container_manager import ContainerEngine
from .manifest import ManifestCatalog
from .process_runner import ProcessRunner
from .reconciler import ContainerStateReconciler
from .session import ComposeSession

logger = logging.getLogger(__name__)

WORKDIR_PREFIX = "docker-compose-temp"


@dataclass(frozen=True)
class Notification:
    """A user-visible error report."""

    id: int
    message: str
    level: str = "error"
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "message": self.message,
            "level": self.level,
            "created_at": self.created_at.isoformat(),
        }


class NotificationCenter:
    """Bounded, append-only list of notifications for the presentation layer."""

    def __init__(self, maxlen: int = 100):
        self._items: deque[Notification] = deque(maxlen=maxlen)
        self._ids = count(1)

    def push(self, message: str, level: str = "error") -> Notification:
        notification = Notification(id=next(self._ids), message=message, level=level)
        self._items.append(notification)
        return notification

    def list(self, since: int = 0) -> list[Notification]:
        """Notifications with an id greater than `since`, oldest first."""
        return [n for n in self._items if n.id > since]

    def __len__(self) -> int:
        return len(self._items)


def create_workdir(scratch_root: str | None = None) -> Path:
    """
    Create the session working directory.

    Raises:
        ScratchDirFailure: If the directory cannot be created
    """
    try:
        return Path(tempfile.mkdtemp(prefix=WORKDIR_PREFIX, dir=scratch_root))
    except OSError as e:
        raise ScratchDirFailure(
            f"Cannot create temporary folder for compose files: {e}"
        ) from e


class Launcher:
    """
    Composition launcher: the single entry point used by the HTTP layer.

    Request methods validate synchronously, then enqueue the work and return
    the queue future without waiting for it.
    """

    def __init__(
        self,
        config: LauncherConfig,
        runner: ProcessRunner | None = None,
        engine: ContainerEngine | None = None,
        fetcher: ArtifactFetcher | None = None,
    ):
        """
        Initialize the launcher.

        Args:
            config: Launcher configuration
            runner: Process runner (default: logs process output)
            engine: Container engine adapter (default: docker via `runner`)
            fetcher: Artifact fetcher (default: git against config.repo_url)
        """
        self.config = config
        self.runner = runner or ProcessRunner()
        self.engine = engine or ContainerEngine(self.runner, docker=config.docker)
        self.fetcher = fetcher or ArtifactFetcher(
            self.runner,
            repo_url=config.repo_url,
            branch=config.branch,
            git=config.git,
            scratch_root=config.scratch_root,
        )

        self.notifications = NotificationCenter()
        self.queue = CommandQueue(on_error=self._report_failure)
        self.catalog = ManifestCatalog(self.fetcher, dev_mode=config.dev_mode)
        self.reconciler = ContainerStateReconciler(
            self.engine,
            poll_interval=config.poll_interval,
            collect_memory=config.collect_memory,
        )
        self.session: ComposeSession | None = None
        self.workdir: Path | None = None
        self.engine_path: str | None = None
        self._forget_pending = False

    @property
    def session_enabled(self) -> bool:
        """False when the working directory could not be created at startup."""
        return self.session is not None

    @property
    def session_snapshot(self) -> SessionSnapshot:
        return self.session.snapshot if self.session else SessionSnapshot()

    async def start(self) -> None:
        """
        Bring the launcher up.

        A missing working directory disables start/stop only; polling and
        manifest refresh keep working.
        """
        logger.info(
            f"Starting launcher ({'development' if self.config.dev_mode else 'production'} mode)"
        )
        try:
            self.workdir = create_workdir(self.config.scratch_root)
            self.session = ComposeSession(
                self.engine,
                self.workdir,
                fetcher=self.fetcher,
                dev_mode=self.config.dev_mode,
            )
            logger.info(f"Compose working directory: {self.workdir}")
        except ScratchDirFailure as e:
            logger.error(f"{e}; start/stop disabled")
            self.notifications.push(f"{e}. Start and stop are disabled.")

        self.queue.start()

        self.engine_path = await self.engine.locate_executable()
        logger.info(f"Docker executable: {self.engine_path or 'Not found'}")

        self.reconciler.listeners.append(self._on_containers_refreshed)
        await self.reconciler.start()

        if self.session is not None:
            self.queue.submit(self._detect_running_project, "detect running project")
        self.request_refresh()

    async def shutdown(self) -> None:
        """Stop polling, drain the queue within the grace period, remove the workdir."""
        logger.info("Stopping launcher...")
        await self.reconciler.stop()
        await self.queue.shutdown(grace_period=self.config.grace_period)

        if self.workdir is not None:
            failures = remove_tree(self.workdir)
            for failure in failures:
                logger.warning(f"Could not remove working directory entry {failure}")
            self.workdir = None
        logger.info("Launcher stopped")

    def request_refresh(self) -> asyncio.Future:
        """Queue a manifest refresh followed by a container refresh."""

        async def refresh() -> None:
            try:
                await self.catalog.refresh()
            finally:
                await self.reconciler.refresh_containers()

        return self.queue.submit(refresh, "refresh compositions")

    def request_start(
        self, composition: str | None = None, version: str | None = None
    ) -> asyncio.Future:
        """
        Queue a start of a composition/version, by default the catalog selection.

        Raises:
            FeatureDisabled: If start/stop is disabled
            SelectionMissing: If no valid pair is given or selected
        """
        session = self._require_session()
        pair = self._resolve_pair(composition, version)

        async def start() -> str:
            project_id = await session.start(pair.composition, pair.version)
            await self.reconciler.refresh_containers()
            return project_id

        return self.queue.submit(start, f"start {pair}")

    def request_stop(self, project_id: str | None = None) -> asyncio.Future:
        """
        Queue a stop of one project, by default the active one.

        Raises:
            FeatureDisabled: If start/stop is disabled
        """
        session = self._require_session()

        async def stop() -> bool:
            stopped = await session.stop(project_id)
            if stopped:
                await self.reconciler.refresh_containers()
            return stopped

        return self.queue.submit(stop, f"stop {project_id or 'active project'}")

    def request_stop_all(self) -> asyncio.Future:
        """
        Queue a stop of every project the engine reports running.

        Raises:
            FeatureDisabled: If start/stop is disabled
        """
        session = self._require_session()

        async def stop_all() -> dict[str, Any]:
            await self.reconciler.refresh_containers()
            outcome = await session.stop_all(self.reconciler.running_projects())
            await self.reconciler.refresh_containers()
            return outcome

        return self.queue.submit(stop_all, "stop all projects")

    def _resolve_pair(
        self, composition: str | None, version: str | None
    ) -> CompositionVersion:
        if composition is None and version is None:
            if self.catalog.selection is None:
                raise SelectionMissing("No composition/version selected.")
            return self.catalog.selection
        if not composition:
            raise SelectionMissing("No composition selected.")
        if not version:
            raise SelectionMissing("No version selected.")
        return self.catalog.find(composition, version)

    def _require_session(self) -> ComposeSession:
        if self.session is None:
            raise FeatureDisabled(
                "Start/stop is disabled: no working directory for compose files"
            )
        return self.session

    async def _detect_running_project(self) -> str | None:
        if self.session is None:
            return None
        running = self.reconciler.running_projects()
        if not running:
            return None
        if len(running) > 1:
            logger.info(f"Several projects are running: {', '.join(running)}")
        if self.session.adopt(running[0]):
            return running[0]
        return None

    def _on_containers_refreshed(self, reconciler: ContainerStateReconciler) -> None:
        snapshot = self.session_snapshot
        if snapshot.active_project_id is None or self._forget_pending:
            return
        if snapshot.active_project_id in reconciler.running_projects():
            return
        if self.queue.closed or self.session is None:
            return

        session = self.session
        self._forget_pending = True

        async def forget() -> bool:
            try:
                # Poll again from inside the queue so a start that just
                # finished is visible before deciding
                await reconciler.refresh_containers()
                return session.forget_if_absent(reconciler.running_projects())
            finally:
                self._forget_pending = False

        self.queue.submit(forget, "forget stopped project")

    def _report_failure(self, description: str, error: BaseException) -> None:
        self.notifications.push(f"{description} failed: {error}")
