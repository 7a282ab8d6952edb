"""Tests for assets, asset collections, and directory staging."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from passbundle.assets import Asset, AssetCollection, require_pass_definition
from passbundle.errors import DuplicatePathError, InvalidAssetError
from passbundle.security import SecurityLimits, validate_asset_path


class TestAssetPath:
    """Test path validation."""

    @pytest.mark.parametrize("path", [
        "pass.json",
        "icon@2x.png",
        "en.lproj/pass.strings",
        "zh-Hans.lproj/logo.png",
    ])
    def test_valid_paths(self, path: str):
        assert validate_asset_path(path) == path

    @pytest.mark.parametrize("path", [
        "",
        "/pass.json",
        "../pass.json",
        "en.lproj/../../etc/passwd",
        "./pass.json",
        "en.lproj//pass.strings",
        "en.lproj\\pass.strings",
        "dir/",
    ])
    def test_invalid_paths(self, path: str):
        with pytest.raises(InvalidAssetError):
            validate_asset_path(path)

    def test_asset_rejects_bad_path(self):
        with pytest.raises(InvalidAssetError):
            Asset("../escape.png", b"x")

    def test_asset_rejects_text_content(self):
        with pytest.raises(InvalidAssetError):
            Asset("pass.json", "{}")  # type: ignore[arg-type]

    def test_asset_freezes_bytearray(self):
        buf = bytearray(b"abc")
        asset = Asset("a.txt", buf)
        buf[0] = ord("z")
        assert asset.content == b"abc"
        assert asset.size == 3


class TestAssetCollection:
    """Test the AssetCollection class."""

    def test_preserves_insertion_order(self):
        assets = AssetCollection([Asset("pass.json", b"{}"), Asset("icon.png", b"png")])
        assert assets.paths() == ["pass.json", "icon.png"]
        assert len(assets) == 2
        assert "icon.png" in assets
        assert assets.get("missing.png") is None

    def test_duplicate_manifest_json_rejected(self):
        """Two assets named manifest.json fail at construction."""
        with pytest.raises(DuplicatePathError) as exc_info:
            AssetCollection([
                Asset("manifest.json", b"{}"),
                Asset("manifest.json", b"{}"),
            ])
        assert exc_info.value.path == "manifest.json"

    def test_duplicate_is_invalid_asset(self):
        with pytest.raises(InvalidAssetError):
            AssetCollection([Asset("a.png", b"1"), Asset("a.png", b"2")])

    def test_from_mapping(self):
        assets = AssetCollection.from_mapping({"pass.json": b"{}", "icon.png": b"png"})
        assert assets.paths() == ["pass.json", "icon.png"]

    def test_with_pass_definition_replaces_in_place(self):
        assets = AssetCollection([Asset("pass.json", b"{}"), Asset("icon.png", b"png")])
        updated = assets.with_pass_definition({"formatVersion": 1})

        assert updated.paths() == ["pass.json", "icon.png"]
        assert json.loads(updated.get("pass.json").content) == {"formatVersion": 1}
        # Original untouched
        assert assets.get("pass.json").content == b"{}"

    def test_with_pass_definition_appends(self):
        assets = AssetCollection([Asset("icon.png", b"png")])
        updated = assets.with_pass_definition(b'{"formatVersion": 1}')
        assert updated.paths() == ["icon.png", "pass.json"]


class TestFromDirectory:
    """Test staging from a pass source directory."""

    def test_stages_all_files(self, pass_dir: Path):
        assets = AssetCollection.from_directory(pass_dir)
        assert sorted(assets.paths()) == [
            "en.lproj/pass.strings",
            "icon.png",
            "icon@2x.png",
            "pass.json",
        ]

    def test_skips_hidden_and_stale_reserved_files(self, pass_dir: Path):
        (pass_dir / ".DS_Store").write_bytes(b"junk")
        (pass_dir / "manifest.json").write_text("{}")
        (pass_dir / "signature").write_bytes(b"old")

        assets = AssetCollection.from_directory(pass_dir)

        assert ".DS_Store" not in assets
        assert "manifest.json" not in assets
        assert "signature" not in assets

    def test_missing_directory(self, tmp_path: Path):
        with pytest.raises(InvalidAssetError):
            AssetCollection.from_directory(tmp_path / "nope")

    def test_file_size_limit(self, pass_dir: Path):
        with pytest.raises(InvalidAssetError, match="too large"):
            AssetCollection.from_directory(pass_dir, limits=SecurityLimits(max_file_size=100))

    def test_max_assets_limit(self, pass_dir: Path):
        with pytest.raises(InvalidAssetError, match="Too many"):
            AssetCollection.from_directory(pass_dir, limits=SecurityLimits(max_assets=2))

    def test_symlink_escape_rejected(self, pass_dir: Path, tmp_path: Path):
        outside = tmp_path / "secret.txt"
        outside.write_text("secret")
        try:
            (pass_dir / "leak.txt").symlink_to(outside)
        except (OSError, NotImplementedError):
            pytest.skip("symlinks not supported")

        with pytest.raises(InvalidAssetError, match="traversal"):
            AssetCollection.from_directory(pass_dir)


class TestRequirePassDefinition:
    """Test pass.json presence checks."""

    def test_present(self, assets: AssetCollection):
        require_pass_definition(assets)

    def test_missing(self):
        with pytest.raises(InvalidAssetError, match="pass.json not found"):
            require_pass_definition(AssetCollection([Asset("icon.png", b"png")]))

    def test_not_json(self):
        with pytest.raises(InvalidAssetError, match="pass.json invalid"):
            require_pass_definition(AssetCollection([Asset("pass.json", b"{not json")]))

    def test_not_object(self):
        with pytest.raises(InvalidAssetError):
            require_pass_definition(AssetCollection([Asset("pass.json", b"[1, 2]")]))

    def test_bad_personalization(self):
        assets = AssetCollection([
            Asset("pass.json", b"{}"),
            Asset("personalization.json", b"nope"),
        ])
        with pytest.raises(InvalidAssetError, match="personalization.json"):
            require_pass_definition(assets)
