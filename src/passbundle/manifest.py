"""Manifest of asset paths to content digests.

The manifest is the document that gets signed. Its encoding is a
canonical JSON object, keys sorted by code point:

    {"icon.png":"<sha1 hex>","pass.json":"<sha1 hex>"}
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Iterator
from dataclasses import dataclass

from passbundle.assets import Asset
from passbundle.canonical import canonical_bytes
from passbundle.digest import Digest, digest_all
from passbundle.errors import DuplicatePathError, InvalidAssetError
from passbundle.security import validate_asset_path

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Manifest:
    """Immutable path -> digest mapping, kept in sorted path order."""

    entries: tuple[tuple[str, Digest], ...]

    def __post_init__(self) -> None:
        seen: set[str] = set()
        for path, _ in self.entries:
            if path in seen:
                raise DuplicatePathError(path)
            seen.add(path)
        object.__setattr__(self, "entries", tuple(sorted(self.entries, key=lambda e: e[0])))

    def to_dict(self) -> dict[str, str]:
        """Convert to a path -> hex digest dictionary."""
        return {path: d.hex for path, d in self.entries}

    def to_bytes(self) -> bytes:
        """Canonical serialized form; these exact bytes are signed."""
        return canonical_bytes(self.to_dict())

    @classmethod
    def from_bytes(cls, data: bytes) -> Manifest:
        """Parse a serialized manifest.

        Raises:
            InvalidAssetError: If the data is not a path -> hex digest object
        """
        try:
            raw = json.loads(data.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise InvalidAssetError(f"Invalid manifest JSON: {e}") from e

        if not isinstance(raw, dict):
            raise InvalidAssetError("Manifest must be a JSON object")

        entries = []
        for path, hex_digest in raw.items():
            validate_asset_path(path)
            if not isinstance(hex_digest, str):
                raise InvalidAssetError(f"Manifest digest for {path} is not a string")
            try:
                entries.append((path, Digest.from_hex(hex_digest)))
            except ValueError as e:
                raise InvalidAssetError(f"Invalid digest for {path}: {e}") from e
        return cls(tuple(entries))

    def paths(self) -> list[str]:
        return [path for path, _ in self.entries]

    def digest_for(self, path: str) -> Digest | None:
        for entry_path, d in self.entries:
            if entry_path == path:
                return d
        return None

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self) -> Iterator[tuple[str, Digest]]:
        return iter(self.entries)


def build(assets: Iterable[Asset], workers: int = 1) -> Manifest:
    """Build the manifest for a set of assets.

    Paths are re-validated for uniqueness even though AssetCollection
    already guarantees it, since any iterable of assets is accepted.

    Args:
        assets: Assets to include
        workers: Digest threads (see digest_all)

    Returns:
        Manifest with exactly one entry per asset

    Raises:
        DuplicatePathError: If two assets share a path
    """
    items = list(assets)
    seen: set[str] = set()
    for asset in items:
        if asset.path in seen:
            raise DuplicatePathError(asset.path)
        seen.add(asset.path)

    manifest = Manifest(tuple(digest_all(items, workers=workers)))
    logger.debug("Built manifest with %d entries", len(manifest))
    return manifest
