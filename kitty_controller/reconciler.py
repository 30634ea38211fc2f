"""
Container state reconciler with a periodic polling loop.

This module implements the controller loop that keeps the launcher's view of
the engine current: it polls the live container list on a fixed interval (and
on demand), replaces the displayed list wholesale, keeps the user's container
selection when it survives the poll, and derives per-project running state.
The derived state, not the session's remembered project, is authoritative for
"is anything running", since it also sees compositions started elsewhere.
"""

import asyncio
import logging
from collections.abc import Callable
from datetime import UTC, datetime

from kitty_common.errors import KittyError
from kitty_common.models import ContainerRecord

from .container_manager import ContainerEngine
from .status import StatusSummary, is_running, summarize

logger = logging.getLogger(__name__)

RefreshListener = Callable[["ContainerStateReconciler"], None]


class ContainerStateReconciler:
    """
    Polls the engine and merges the result with prior selection state.

    Runs on its own task, independently of the command queue; it never
    touches the compose session, it only publishes what it observed.
    """

    def __init__(
        self,
        engine: ContainerEngine,
        poll_interval: float = 5.0,
        collect_memory: bool = False,
    ):
        """
        Initialize the reconciler.

        Args:
            engine: Container engine adapter
            poll_interval: Seconds between polls
            collect_memory: Also read per-container memory usage each poll
        """
        self.engine = engine
        self.poll_interval = poll_interval
        self.collect_memory = collect_memory

        self.records: tuple[ContainerRecord, ...] = ()
        self.selected_name: str | None = None
        self.last_polled_at: datetime | None = None
        self.summary: StatusSummary = summarize(())
        self.listeners: list[RefreshListener] = []

        self._lock = asyncio.Lock()
        self._running = False
        self._task: asyncio.Task | None = None

    async def start(self) -> None:
        """Start the polling loop after an initial refresh."""
        if self._running:
            logger.warning("Reconciler already running")
            return

        await self.refresh_containers()
        self._running = True
        self._task = asyncio.create_task(self._run_loop(), name="kitty-reconciler")
        logger.info(f"Container reconciler started (interval {self.poll_interval}s)")

    async def stop(self) -> None:
        """Stop the polling loop."""
        if not self._running:
            return

        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Container reconciler stopped")

    async def _run_loop(self) -> None:
        """Main polling loop."""
        while self._running:
            await asyncio.sleep(self.poll_interval)
            try:
                await self.refresh_containers()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Error in reconciliation loop: {e}", exc_info=True)

    async def refresh_containers(self) -> bool:
        """
        Poll the engine once and replace the container list.

        On a failed poll the previous list is kept and the error is logged.

        Returns:
            True if the list was replaced
        """
        async with self._lock:
            try:
                records = await self.engine.list_containers()
                if self.collect_memory and records:
                    records = await self._attach_memory(records)
            except KittyError as e:
                logger.error(f"Error fetching containers: {e}")
                return False

            self.apply(records)

        for listener in list(self.listeners):
            try:
                listener(self)
            except Exception as e:
                logger.error(f"Refresh listener failed: {e}", exc_info=True)
        return True

    def apply(self, records: list[ContainerRecord]) -> None:
        """
        Replace the container list with a new poll result.

        The selection survives only if a record with the same name is present.
        """
        self.records = tuple(records)
        names = {record.name for record in self.records}
        if self.selected_name is not None and self.selected_name not in names:
            logger.debug(f"Selected container {self.selected_name} disappeared")
            self.selected_name = None
        self.summary = summarize(self.records)
        self.last_polled_at = datetime.now(UTC)
        logger.debug(f"Reconciliation: {self.summary.label}")

    def select(self, name: str | None) -> ContainerRecord | None:
        """
        Select a container by name, or clear the selection with None.

        Returns:
            The selected record, or None if no such container is listed
        """
        if name is None:
            self.selected_name = None
            return None
        record = self.find(name)
        self.selected_name = record.name if record else None
        return record

    @property
    def selected(self) -> ContainerRecord | None:
        return self.find(self.selected_name) if self.selected_name else None

    def find(self, name: str) -> ContainerRecord | None:
        for record in self.records:
            if record.name == name:
                return record
        return None

    def project_states(self) -> dict[str, bool]:
        """Map each compose project label to whether any member container runs."""
        states: dict[str, bool] = {}
        for record in self.records:
            if not record.project:
                continue
            states[record.project] = states.get(record.project, False) or is_running(record)
        return states

    def running_projects(self) -> list[str]:
        """Sorted labels of projects with at least one running container."""
        return sorted(project for project, up in self.project_states().items() if up)

    async def _attach_memory(
        self, records: list[ContainerRecord]
    ) -> list[ContainerRecord]:
        try:
            usage = await self.engine.memory_usage()
        except KittyError as e:
            logger.warning(f"Error reading memory usage: {e}")
            return records
        return [record.with_memory(usage.get(record.name)) for record in records]
