"""
Compose session lifecycle.

The session remembers which compose project this launcher brought up and
the working files it used. It is owned by the command queue: every method
that reads or writes its fields must run inside a queue task. Everyone
else reads the immutable SessionSnapshot it publishes.

State machine: idle -> starting -> active -> stopping -> idle, with
starting -> idle on any failure.
"""

import logging
import re
from collections.abc import Iterable
from pathlib import Path

from kitty_common.errors import SelectionConflict
from kitty_common.models import (
    Composition,
    SessionSnapshot,
    SessionState,
    Version,
)

from .artifact_fetcher import ArtifactFetcher
from .command_queue import fan_out
from .container_manager import ContainerEngine
from .process_runner import check_returncode

logger = logging.getLogger(__name__)

TEMPLATE_PATH = "docker/compose/docker-compose-{name}.yml"
DEV_TEMPLATES = Path(__file__).parent / "fixtures"

_PROJECT_ID_INVALID = re.compile(r"[^a-z0-9\-_]")


def derive_project_id(composition: str, version: str) -> str:
    """
    Derive the engine project name for a composition and version.

    Lower-cases "<composition>-<version>" and replaces every character
    outside [a-z0-9-_] with "-". Applying it to its own output is a no-op.

    >>> derive_project_id("My App", "2.0")
    'my-app-2-0'
    """
    return _PROJECT_ID_INVALID.sub("-", f"{composition}-{version}".lower())


def template_file_name(composition: str) -> str:
    return f"docker-compose-{composition}.yml"


class ComposeSession:
    """
    The single launched compose project and its working files.

    `active_project_id` is only set between a successful start and a stop.
    It is cleared before a stop runs and whenever a start step fails, so the
    session never describes a project that does not exist.
    """

    def __init__(
        self,
        engine: ContainerEngine,
        workdir: Path,
        fetcher: ArtifactFetcher | None = None,
        dev_mode: bool = False,
        dev_templates: Path = DEV_TEMPLATES,
    ):
        """
        Initialize the session.

        Args:
            engine: Container engine adapter
            workdir: Directory receiving the template and env file
            fetcher: Artifact fetcher for templates (production mode)
            dev_mode: Use bundled templates instead of fetching them
            dev_templates: Directory of bundled templates
        """
        self.engine = engine
        self.workdir = Path(workdir)
        self.fetcher = fetcher
        self.dev_mode = dev_mode
        self.dev_templates = dev_templates

        self.state = SessionState.IDLE
        self.active_project_id: str | None = None
        self.compose_file_path: Path | None = None
        self.env_file_path: Path | None = None
        self._snapshot = SessionSnapshot()

    @property
    def snapshot(self) -> SessionSnapshot:
        """Last published read-only view; safe to read from anywhere."""
        return self._snapshot

    async def start(self, composition: Composition, version: Version) -> str:
        """
        Launch a composition at a version.

        Args:
            composition: Composition to launch
            version: Version whose ident becomes IMAGE_TAG

        Returns:
            The derived project id

        Raises:
            SelectionConflict: If a session is already active (nothing is spawned)
            FetchFailure, ProcessLaunchFailure, ProcessNonZeroExit, OSError:
                If any start step fails; the session is idle afterwards
        """
        if self.active_project_id is not None:
            raise SelectionConflict(
                f"Project {self.active_project_id} is already running; stop it first"
            )

        project_id = derive_project_id(composition.name, version.ident)
        self._set_state(SessionState.STARTING)
        try:
            compose_file = await self._materialize_template(composition.name)
            env_file = self._write_env_file(version.ident)

            returncode = await self.engine.compose_up(project_id, env_file, compose_file)
            check_returncode(
                self.engine.compose_up_argv(project_id, env_file, compose_file),
                returncode,
                f"Failed to start {composition.name} / {version.ident}",
            )
        except BaseException:
            self.active_project_id = None
            self._set_state(SessionState.IDLE)
            raise

        self.active_project_id = project_id
        self.compose_file_path = compose_file
        self.env_file_path = env_file
        self._set_state(SessionState.ACTIVE)
        logger.info(f"Started {composition.name} version {version.ident} as {project_id}")
        return project_id

    async def stop(self, project_id: str | None = None) -> bool:
        """
        Tear down a project, by default the active one.

        The active project id is cleared before `down` runs; a failing
        `down` is logged and does not bring the session back.

        Returns:
            True if a `down` was issued, False if there was nothing to stop
        """
        target = project_id or self.active_project_id
        if target is None:
            logger.warning("No composition is currently running; nothing to stop.")
            return False

        if target == self.active_project_id:
            self.active_project_id = None
            self._set_state(SessionState.STOPPING)
        try:
            returncode = await self.engine.compose_down(target)
        finally:
            if self.active_project_id is None:
                self._clear_files()
                self._set_state(SessionState.IDLE)

        if returncode != 0:
            logger.warning(f"docker compose down for {target} exited with code {returncode}")
        else:
            logger.info(f"Took down project {target}")
        return True

    async def stop_all(self, project_ids: Iterable[str]) -> dict[str, int | BaseException]:
        """
        Tear down every given project in parallel and wait for all of them.

        Args:
            project_ids: Projects observed running by the reconciler

        Returns:
            Mapping of project id to exit code, or to the exception raised
        """
        targets = sorted(set(project_ids))
        self.active_project_id = None
        self._set_state(SessionState.STOPPING)
        try:
            if not targets:
                logger.info("No running projects to stop.")
                return {}

            logger.info(f"Stopping {len(targets)} project(s): {', '.join(targets)}")
            results = await fan_out(
                [lambda p=project: self.engine.compose_down(p) for project in targets]
            )
        finally:
            self._clear_files()
            self._set_state(SessionState.IDLE)

        outcome: dict[str, int | BaseException] = dict(zip(targets, results))
        for project, result in outcome.items():
            if isinstance(result, BaseException):
                logger.error(f"Failed to stop {project}: {result}")
            elif result != 0:
                logger.warning(f"docker compose down for {project} exited with code {result}")
        return outcome

    def adopt(self, project_id: str) -> bool:
        """
        Seed the session with a project started outside this launcher.

        Returns:
            True if adopted, False if a session was already active
        """
        if self.active_project_id is not None:
            return False
        self.active_project_id = project_id
        self._set_state(SessionState.ACTIVE)
        logger.info(f"Detected running project {project_id}")
        return True

    def forget_if_absent(self, running_projects: Iterable[str]) -> bool:
        """
        Clear the active project if the engine no longer reports it running.

        Returns:
            True if the session was cleared
        """
        if self.state is not SessionState.ACTIVE or self.active_project_id is None:
            return False
        if self.active_project_id in set(running_projects):
            return False
        logger.info(f"Project {self.active_project_id} is no longer running")
        self.active_project_id = None
        self._clear_files()
        self._set_state(SessionState.IDLE)
        return True

    async def _materialize_template(self, composition: str) -> Path:
        target = self.workdir / template_file_name(composition)
        if self.dev_mode:
            source = self.dev_templates / template_file_name(composition)
            logger.info(f"DEV mode enabled: using bundled {source.name}")
            target.write_bytes(source.read_bytes())
        else:
            if self.fetcher is None:
                raise RuntimeError("No artifact fetcher configured for production mode")
            logger.info("Fetching compose file via git show...")
            await self.fetcher.fetch_to(TEMPLATE_PATH.format(name=composition), target)
        logger.info(f"Fetched compose file: {target.name}")
        return target

    def _write_env_file(self, version: str) -> Path:
        env_file = self.workdir / ".env"
        env_file.write_text(f"IMAGE_TAG={version}\n", encoding="utf-8")
        logger.info(f"Wrote environment file with IMAGE_TAG={version}")
        return env_file

    def _clear_files(self) -> None:
        self.compose_file_path = None
        self.env_file_path = None

    def _set_state(self, state: SessionState) -> None:
        self.state = state
        self._snapshot = SessionSnapshot(
            state=state,
            active_project_id=self.active_project_id,
            compose_file_path=str(self.compose_file_path) if self.compose_file_path else None,
            env_file_path=str(self.env_file_path) if self.env_file_path else None,
        )
