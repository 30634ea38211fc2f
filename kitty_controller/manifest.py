"""
Manifest catalog of available compositions and versions.

The manifest is a JSON document published in the compositions repository
(or bundled as a fixture in development mode). A refresh only replaces the
current snapshot when the new document parses and lists at least one
composition and one version.
"""

import json
import logging
from pathlib import Path
from typing import Any

from kitty_common.errors import ManifestEmpty, ManifestParseFailure, SelectionMissing
from kitty_common.models import (
    Composition,
    CompositionVersion,
    ManifestSnapshot,
    Version,
)

from .artifact_fetcher import ArtifactFetcher

logger = logging.getLogger(__name__)

MANIFEST_PATH = "docker/compose/versions.json"
DEV_MANIFEST = Path(__file__).parent / "fixtures" / "dev-versions.json"


def parse_manifest(data: bytes | str) -> tuple[list[Composition], list[Version]]:
    """
    Parse manifest JSON into composition and version lists.

    Args:
        data: Raw manifest document

    Returns:
        Tuple of (compositions, versions); either may be empty

    Raises:
        ManifestParseFailure: If the document is not valid manifest JSON
    """
    try:
        document: Any = json.loads(data)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ManifestParseFailure(f"Manifest is not valid JSON: {e}") from e

    if not isinstance(document, dict):
        raise ManifestParseFailure("Manifest must be a JSON object")

    try:
        compositions = [
            Composition.from_dict(entry) for entry in document.get("compositions") or []
        ]
        versions = [Version.from_dict(entry) for entry in document.get("versions") or []]
    except (KeyError, TypeError, AttributeError) as e:
        raise ManifestParseFailure(f"Malformed manifest entry: {e}") from e

    for composition in compositions:
        if not isinstance(composition.name, str) or not composition.name:
            raise ManifestParseFailure("Composition name must be a non-empty string")
    for version in versions:
        if not isinstance(version.ident, str) or not version.ident:
            raise ManifestParseFailure("Version ident must be a non-empty string")

    return compositions, versions


class ManifestCatalog:
    """
    Holds the current manifest snapshot and the user's pair selection.

    Refreshes run as command queue tasks; readers only ever see a complete
    snapshot.
    """

    def __init__(
        self,
        fetcher: ArtifactFetcher | None,
        dev_mode: bool = False,
        manifest_path: str = MANIFEST_PATH,
        dev_manifest: Path = DEV_MANIFEST,
    ):
        """
        Initialize the catalog.

        Args:
            fetcher: Artifact fetcher for production mode (unused in dev mode)
            dev_mode: Read the bundled fixture instead of the remote repository
            manifest_path: Manifest path inside the repository
            dev_manifest: Fixture file used in dev mode
        """
        self.fetcher = fetcher
        self.dev_mode = dev_mode
        self.manifest_path = manifest_path
        self.dev_manifest = dev_manifest
        self.snapshot: ManifestSnapshot | None = None
        self.selection: CompositionVersion | None = None

    async def refresh(self) -> ManifestSnapshot:
        """
        Fetch and parse the manifest, replacing the snapshot on success.

        Returns:
            The new snapshot

        Raises:
            FetchFailure: If the remote fetch failed
            ManifestParseFailure: If the document is malformed
            ManifestEmpty: If it lists no compositions or no versions
        """
        data = await self._load()
        compositions, versions = parse_manifest(data)
        if not compositions or not versions:
            raise ManifestEmpty("No compositions or versions available from server.")

        self.snapshot = ManifestSnapshot(
            compositions=tuple(compositions), versions=tuple(versions)
        )
        self.selection = None
        logger.info(
            f"Refreshed compositions and versions "
            f"({len(compositions)} compositions, {len(versions)} versions)"
        )
        return self.snapshot

    def pairs(self) -> list[CompositionVersion]:
        """All selectable pairs of the current snapshot."""
        return self.snapshot.pairs() if self.snapshot else []

    def find(self, composition: str, version: str) -> CompositionVersion:
        """
        Look up a pair by composition name and version ident.

        Raises:
            SelectionMissing: If the pair is not in the current snapshot
        """
        for pair in self.pairs():
            if pair.composition_name == composition and pair.version_ident == version:
                return pair
        raise SelectionMissing(f"Unknown composition/version: {composition} / {version}")

    def select(self, composition: str, version: str) -> CompositionVersion:
        self.selection = self.find(composition, version)
        return self.selection

    def clear_selection(self) -> None:
        self.selection = None

    async def _load(self) -> bytes:
        if self.dev_mode:
            logger.info(f"DEV mode enabled: using {self.dev_manifest.name}")
            return self.dev_manifest.read_bytes()
        if self.fetcher is None:
            raise RuntimeError("No artifact fetcher configured for production mode")
        logger.info("Fetching versions.json via git...")
        return await self.fetcher.fetch(self.manifest_path)
