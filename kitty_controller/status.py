"""
Status aggregation over the polled container list.

Pure functions: no I/O, no state. The presentation layer decides how to
render the classification.
"""

from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from kitty_common.models import ContainerRecord


class StatusKind(str, Enum):
    RUNNING = "running"
    STOPPED = "stopped"
    OTHER = "other"


class OverallState(str, Enum):
    STOPPED = "stopped"
    RUNNING = "running"
    PARTIAL = "partial"


_STOPPED_PREFIXES = ("Exited", "Created", "Dead")


def classify_status(status: str) -> StatusKind:
    """Classify engine status text such as "Up 2 minutes" or "Exited (0)"."""
    text = status.strip()
    if text.startswith("Up"):
        return StatusKind.RUNNING
    if text.startswith(_STOPPED_PREFIXES):
        return StatusKind.STOPPED
    return StatusKind.OTHER


def is_running(record: ContainerRecord) -> bool:
    return classify_status(record.status) is StatusKind.RUNNING


@dataclass(frozen=True)
class StatusSummary:
    """Running/stopped/partial summary of one container list."""

    state: OverallState
    running: int
    total: int
    not_running: tuple[ContainerRecord, ...] = field(default=())

    @property
    def label(self) -> str:
        if self.total == 0:
            return "Status: Stopped"
        return f"Status: {self.running}/{self.total} running"

    def to_dict(self) -> dict[str, Any]:
        """Convert summary to dictionary format (for API responses)."""
        return {
            "state": self.state.value,
            "running": self.running,
            "total": self.total,
            "label": self.label,
            "not_running": [
                {"name": r.name, "status": r.status} for r in self.not_running
            ],
        }


def summarize(records: Iterable[ContainerRecord]) -> StatusSummary:
    """
    Summarize a container list.

    Stopped when empty, Running when every container runs, Partial otherwise.
    The containers not in a running state are listed for diagnostics.
    """
    records = list(records)
    not_running = tuple(r for r in records if not is_running(r))
    total = len(records)
    running = total - len(not_running)

    if total == 0:
        state = OverallState.STOPPED
    elif running == total:
        state = OverallState.RUNNING
    else:
        state = OverallState.PARTIAL
    return StatusSummary(
        state=state, running=running, total=total, not_running=not_running
    )
