"""
Unit tests for kitty_controller.manifest module.

Tests manifest parsing and the catalog refresh/selection rules.
"""

import json
from unittest.mock import AsyncMock

import pytest

from kitty_common.errors import (
    FetchFailure,
    ManifestEmpty,
    ManifestParseFailure,
    SelectionMissing,
)
from kitty_common.models import Composition, Version
from kitty_controller.manifest import (
    DEV_MANIFEST,
    MANIFEST_PATH,
    ManifestCatalog,
    parse_manifest,
)


def manifest(compositions, versions) -> bytes:
    return json.dumps({"compositions": compositions, "versions": versions}).encode()


SINGLE = manifest([{"name": "web", "comment": "c"}], [{"ident": "1.0.0", "comment": "v"}])


def fake_fetcher(*documents):
    fetcher = AsyncMock()
    fetcher.fetch = AsyncMock(side_effect=list(documents))
    return fetcher


class TestParseManifest:
    """Test suite for parse_manifest()."""

    def test_parses_entries(self):
        compositions, versions = parse_manifest(SINGLE)

        assert compositions == [Composition("web", "c")]
        assert versions == [Version("1.0.0", "v")]

    def test_missing_lists_are_empty(self):
        assert parse_manifest(b"{}") == ([], [])

    @pytest.mark.parametrize(
        "data",
        [
            b"not json",
            b"[1, 2]",
            b'{"compositions": [{"comment": "no name"}]}',
            b'{"compositions": ["web"]}',
            b'{"versions": [{"ident": ""}]}',
            b'{"compositions": [{"name": 5}]}',
        ],
    )
    def test_malformed_documents(self, data):
        with pytest.raises(ManifestParseFailure):
            parse_manifest(data)


class TestCatalogRefresh:
    """Test suite for ManifestCatalog.refresh."""

    @pytest.mark.asyncio
    async def test_single_entry_manifest_yields_one_pair(self):
        fetcher = fake_fetcher(SINGLE)
        catalog = ManifestCatalog(fetcher)

        await catalog.refresh()

        assert [str(p) for p in catalog.pairs()] == ["web / 1.0.0"]
        fetcher.fetch.assert_awaited_once_with(MANIFEST_PATH)

    @pytest.mark.asyncio
    async def test_empty_versions_keep_previous_snapshot(self):
        """An empty fetch never replaces a good snapshot."""
        catalog = ManifestCatalog(fake_fetcher(SINGLE, manifest([{"name": "api"}], [])))
        first = await catalog.refresh()

        with pytest.raises(ManifestEmpty) as exc_info:
            await catalog.refresh()

        assert str(exc_info.value) == "No compositions or versions available from server."
        assert catalog.snapshot is first

    @pytest.mark.asyncio
    async def test_fetch_failure_keeps_previous_snapshot(self):
        catalog = ManifestCatalog(fake_fetcher(SINGLE, FetchFailure("git fetch failed")))
        first = await catalog.refresh()

        with pytest.raises(FetchFailure):
            await catalog.refresh()

        assert catalog.snapshot is first

    @pytest.mark.asyncio
    async def test_parse_failure_on_first_refresh(self):
        catalog = ManifestCatalog(fake_fetcher(b"{broken"))

        with pytest.raises(ManifestParseFailure):
            await catalog.refresh()

        assert catalog.snapshot is None
        assert catalog.pairs() == []

    @pytest.mark.asyncio
    async def test_successful_refresh_clears_selection(self):
        catalog = ManifestCatalog(fake_fetcher(SINGLE, SINGLE))
        await catalog.refresh()
        catalog.select("web", "1.0.0")

        await catalog.refresh()

        assert catalog.selection is None

    @pytest.mark.asyncio
    async def test_dev_mode_reads_bundled_fixture(self):
        fetcher = fake_fetcher()
        catalog = ManifestCatalog(fetcher, dev_mode=True)

        snapshot = await catalog.refresh()

        fetcher.fetch.assert_not_called()
        assert [c.name for c in snapshot.compositions] == ["web", "backend"]
        assert len(catalog.pairs()) == 6
        assert DEV_MANIFEST.exists()

    @pytest.mark.asyncio
    async def test_dev_mode_custom_fixture(self, tmp_path):
        fixture = tmp_path / "versions.json"
        fixture.write_bytes(SINGLE)
        catalog = ManifestCatalog(None, dev_mode=True, dev_manifest=fixture)

        await catalog.refresh()

        assert [str(p) for p in catalog.pairs()] == ["web / 1.0.0"]


class TestCatalogSelection:
    """Test suite for ManifestCatalog selection."""

    @pytest.mark.asyncio
    async def test_select_and_clear(self):
        catalog = ManifestCatalog(fake_fetcher(SINGLE))
        await catalog.refresh()

        pair = catalog.select("web", "1.0.0")

        assert catalog.selection is pair
        catalog.clear_selection()
        assert catalog.selection is None

    @pytest.mark.asyncio
    async def test_unknown_pair(self):
        catalog = ManifestCatalog(fake_fetcher(SINGLE))
        await catalog.refresh()

        with pytest.raises(SelectionMissing):
            catalog.find("web", "9.9.9")

    def test_nothing_selectable_before_refresh(self):
        catalog = ManifestCatalog(fake_fetcher())

        with pytest.raises(SelectionMissing):
            catalog.select("web", "1.0.0")
        assert catalog.selection is None
