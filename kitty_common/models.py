"""
Data models for the composition launcher.

These models represent the domain objects shared by the controller, the
HTTP server and the client. They are immutable value records: instances are
replaced wholesale on every manifest refresh or container poll, never
mutated in place.
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any


@dataclass(frozen=True)
class Composition:
    """
    A named, deployable application template.

    Identity is the name; the comment is free text shown next to it.
    """

    name: str
    comment: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Convert composition to dictionary format (manifest wire format)."""
        return {"name": self.name, "comment": self.comment}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Composition":
        """Create composition from a manifest entry."""
        return cls(name=data["name"], comment=data.get("comment") or "")

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class Version:
    """A release/image-tag identifier selectable independently of composition."""

    ident: str
    comment: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Convert version to dictionary format (manifest wire format)."""
        return {"ident": self.ident, "comment": self.comment}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Version":
        """Create version from a manifest entry."""
        return cls(ident=data["ident"], comment=data.get("comment") or "")

    def __str__(self) -> str:
        return self.ident


@dataclass(frozen=True)
class CompositionVersion:
    """
    One selectable (composition, version) pairing.

    Derived as the cross product of the current manifest lists; never
    persisted.
    """

    composition: Composition
    version: Version

    @property
    def composition_name(self) -> str:
        return self.composition.name

    @property
    def version_ident(self) -> str:
        return self.version.ident

    def to_dict(self) -> dict[str, Any]:
        """Convert pair to dictionary format (for API responses)."""
        return {
            "composition": self.composition.name,
            "version": self.version.ident,
            "composition_comment": self.composition.comment,
            "version_comment": self.version.comment,
        }

    def __str__(self) -> str:
        return f"{self.composition.name} / {self.version.ident}"


@dataclass(frozen=True)
class ContainerRecord:
    """
    One live container as reported by a single engine poll.

    Identity is the name, within one poll.
    """

    name: str
    image: str
    status: str  # Engine status text, e.g. "Up 2 minutes"
    project: str | None = None  # com.docker.compose.project label
    uptime: str | None = None  # Engine "RunningFor" column
    memory: str | None = None  # Only filled when memory collection is enabled

    def with_memory(self, memory: str | None) -> "ContainerRecord":
        """Return a copy of this record carrying a memory usage reading."""
        return ContainerRecord(
            name=self.name,
            image=self.image,
            status=self.status,
            project=self.project,
            uptime=self.uptime,
            memory=memory,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert record to dictionary format (for API responses)."""
        return {
            "name": self.name,
            "image": self.image,
            "status": self.status,
            "project": self.project,
            "uptime": self.uptime,
            "memory": self.memory,
        }


@dataclass(frozen=True)
class ManifestSnapshot:
    """
    The catalog of compositions and versions from one successful fetch.

    Replaced atomically; a failed or empty fetch never produces one.
    """

    compositions: tuple[Composition, ...]
    versions: tuple[Version, ...]
    fetched_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def pairs(self) -> list[CompositionVersion]:
        """All composition/version pairs, composition-major."""
        return [
            CompositionVersion(composition, version)
            for composition in self.compositions
            for version in self.versions
        ]

    def to_dict(self) -> dict[str, Any]:
        """Convert snapshot to dictionary format (for API responses)."""
        return {
            "compositions": [c.to_dict() for c in self.compositions],
            "versions": [v.to_dict() for v in self.versions],
            "fetched_at": self.fetched_at.isoformat(),
        }


class SessionState(str, Enum):
    """Lifecycle states of the compose session."""

    IDLE = "idle"
    STARTING = "starting"
    ACTIVE = "active"
    STOPPING = "stopping"


@dataclass(frozen=True)
class SessionSnapshot:
    """
    Read-only view of the compose session.

    Published by the session after every mutation so that the reconciler and
    the HTTP layer never touch the mutable session itself.
    """

    state: SessionState = SessionState.IDLE
    active_project_id: str | None = None
    compose_file_path: str | None = None
    env_file_path: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert snapshot to dictionary format (for API responses)."""
        return {
            "state": self.state.value,
            "active_project_id": self.active_project_id,
            "compose_file_path": self.compose_file_path,
            "env_file_path": self.env_file_path,
        }
