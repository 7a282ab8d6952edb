"""Tests for digests, canonical JSON, and manifest building."""

from __future__ import annotations

import hashlib
import json

import pytest

from passbundle.assets import Asset, AssetCollection
from passbundle.canonical import canonical_bytes, canonical_json
from passbundle.digest import Digest, digest, digest_all
from passbundle.errors import DuplicatePathError, InvalidAssetError
from passbundle.manifest import Manifest, build


class TestDigest:
    """Test the digest engine."""

    def test_known_sha1(self):
        assert digest(Asset("a.txt", b"abc")).hex == "a9993e364706816aba3e25717850c26c9cd0d89d"

    def test_stable_for_same_content(self):
        a = Asset("a.png", b"same bytes")
        b = Asset("b.png", b"same bytes")
        assert digest(a) == digest(b) == digest(a)

    def test_differs_for_different_content(self):
        samples = [b"", b"a", b"b", b"ab", b"ba", b"\x00", bytes(range(256))]
        hexes = {digest(Asset("x", s)).hex for s in samples}
        assert len(hexes) == len(samples)

    def test_digest_all_parallel_keeps_order(self):
        items = [Asset(f"img{i:03d}.png", bytes([i]) * 4096) for i in range(50)]
        sequential = digest_all(items, workers=1)
        parallel = digest_all(items, workers=8)
        assert parallel == sequential
        assert [p for p, _ in parallel] == [a.path for a in items]

    def test_from_hex_roundtrip(self):
        d = digest(Asset("a", b"abc"))
        assert Digest.from_hex(d.hex) == d
        with pytest.raises(ValueError):
            Digest.from_hex("abcd")


class TestCanonicalJSON:
    """Test canonical serialization."""

    def test_sorted_compact(self):
        assert canonical_json({"b": 1, "a": {"d": 2, "c": 3}}) == '{"a":{"c":3,"d":2},"b":1}'

    def test_ascii_only(self):
        assert canonical_bytes({"de.lproj/Straße.png": "x"}) == b'{"de.lproj/Stra\\u00dfe.png":"x"}'

    def test_rejects_nan(self):
        with pytest.raises(ValueError):
            canonical_json({"a": float("nan")})

    def test_rejects_non_string_keys(self):
        with pytest.raises(TypeError):
            canonical_json({1: "a"})


class TestManifest:
    """Test manifest building and serialization."""

    def test_scenario_two_assets(self):
        """pass.json + icon.png -> icon.png sorted first, SHA-1 hex values."""
        pass_json = b'{"formatVersion":1}'
        icon = b"\x89PNG icon bytes"
        assets = AssetCollection([Asset("pass.json", pass_json), Asset("icon.png", icon)])

        manifest = build(assets)

        expected = (
            '{"icon.png":"%s","pass.json":"%s"}'
            % (hashlib.sha1(icon).hexdigest(), hashlib.sha1(pass_json).hexdigest())
        ).encode("ascii")
        assert manifest.to_bytes() == expected
        assert manifest.paths() == ["icon.png", "pass.json"]

    def test_deterministic(self, assets: AssetCollection):
        outputs = {build(assets).to_bytes() for _ in range(10)}
        assert len(outputs) == 1

    def test_insertion_order_does_not_matter(self, assets: AssetCollection):
        reversed_assets = AssetCollection(reversed(list(assets)))
        assert build(reversed_assets).to_bytes() == build(assets).to_bytes()

    def test_parallel_matches_sequential(self, assets: AssetCollection):
        assert build(assets, workers=4).to_bytes() == build(assets).to_bytes()

    def test_completeness(self, assets: AssetCollection):
        manifest = build(assets)
        assert len(manifest) == len(assets)
        assert sorted(manifest.paths()) == sorted(assets.paths())
        for asset in assets:
            assert manifest.digest_for(asset.path) == digest(asset)

    def test_duplicate_paths_revalidated(self):
        with pytest.raises(DuplicatePathError):
            build([Asset("icon.png", b"1"), Asset("icon.png", b"2")])

    def test_manifest_rejects_duplicate_entries(self):
        d = digest(Asset("a", b"a"))
        with pytest.raises(DuplicatePathError):
            Manifest((("a", d), ("a", d)))

    def test_from_bytes_roundtrip(self, assets: AssetCollection):
        manifest = build(assets)
        assert Manifest.from_bytes(manifest.to_bytes()) == manifest

    def test_to_dict_is_plain_json(self, assets: AssetCollection):
        manifest = build(assets)
        assert json.loads(manifest.to_bytes()) == manifest.to_dict()

    @pytest.mark.parametrize("data", [
        b"not json",
        b"[]",
        b'{"../x": "a9993e364706816aba3e25717850c26c9cd0d89d"}',
        b'{"a.png": 5}',
        b'{"a.png": "zz"}',
    ])
    def test_from_bytes_rejects_malformed(self, data: bytes):
        with pytest.raises(InvalidAssetError):
            Manifest.from_bytes(data)

    def test_empty_manifest(self):
        assert build(AssetCollection()).to_bytes() == b"{}"
