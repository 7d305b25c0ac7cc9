"""Tests for the folder registry."""

from pathlib import Path

import pytest

from fetchbay.services.folders import FolderRegistry, parse_folder_mapping


class TestParseFolderMapping:
    """Tests for parse_folder_mapping."""

    def test_basic_mapping(self):
        """Test key:path pairs separated by semicolons."""
        mapping = parse_folder_mapping("movies:/data/movies;files:/data/files")

        assert mapping == {"movies": "/data/movies", "files": "/data/files"}

    def test_splits_on_first_colon_only(self):
        """Test that colons inside the path are kept."""
        mapping = parse_folder_mapping(r"win:C:\Downloads;url:/srv/a:b")

        assert mapping == {"win": r"C:\Downloads", "url": "/srv/a:b"}

    @pytest.mark.parametrize(
        "raw",
        ["", "nocolon", ":/path/without/key", "key:", ";;"],
    )
    def test_malformed_entries_skipped(self, raw: str):
        """Test that malformed entries produce nothing."""
        assert parse_folder_mapping(raw) == {}

    def test_whitespace_trimmed(self):
        """Test that keys and paths are trimmed."""
        assert parse_folder_mapping(" files : /data/files ; ") == {"files": "/data/files"}

    def test_order_preserved(self):
        """Test configuration order is kept."""
        mapping = parse_folder_mapping("b:/b;a:/a;c:/c")

        assert list(mapping) == ["b", "a", "c"]


class TestFolderRegistry:
    """Tests for FolderRegistry."""

    def test_resolve_known_key(self, tmp_path: Path):
        """Test resolving a configured key to an absolute path."""
        registry = FolderRegistry({"files": str(tmp_path / "files")})

        assert registry.resolve("files") == (tmp_path / "files").absolute()
        assert "files" in registry
        assert len(registry) == 1

    def test_resolve_unknown_key(self, tmp_path: Path):
        """Test that unknown keys resolve to None."""
        registry = FolderRegistry.from_string(f"files:{tmp_path}")

        assert registry.resolve("movies") is None
        assert "movies" not in registry

    def test_keys_in_configuration_order(self, tmp_path: Path):
        """Test keys() ordering."""
        registry = FolderRegistry.from_string(f"z:{tmp_path}/z;a:{tmp_path}/a")

        assert registry.keys() == ["z", "a"]

    def test_ensure_creates_missing_folder(self, tmp_path: Path):
        """Test that ensure() creates nested folders."""
        target = tmp_path / "deep" / "nested"
        registry = FolderRegistry({"files": str(target)})

        result = registry.ensure("files")

        assert result == target.absolute()
        assert target.is_dir()

    def test_ensure_unknown_key_raises(self, tmp_path: Path):
        """Test that ensure() rejects unconfigured keys."""
        registry = FolderRegistry({})

        with pytest.raises(KeyError):
            registry.ensure("missing")
