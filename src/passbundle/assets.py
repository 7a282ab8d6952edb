"""Assets and asset collections consumed by the bundle pipeline."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from passbundle.errors import DuplicatePathError, InvalidAssetError
from passbundle.layout import (
    PASS_DEFINITION_NAME,
    PERSONALIZATION_NAME,
    RESERVED_NAMES,
)
from passbundle.security import (
    SecurityLimits,
    check_path_safety,
    relative_asset_path,
    validate_asset_path,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Asset:
    """A single file contributed to a bundle."""

    path: str
    content: bytes

    def __post_init__(self) -> None:
        validate_asset_path(self.path)
        if not isinstance(self.content, (bytes, bytearray, memoryview)):
            raise InvalidAssetError(
                f"Asset content must be bytes: {self.path} ({type(self.content).__name__})"
            )
        # Freeze mutable buffers
        if not isinstance(self.content, bytes):
            object.__setattr__(self, "content", bytes(self.content))

    @property
    def size(self) -> int:
        return len(self.content)


class AssetCollection:
    """Insertion-ordered, read-only set of assets keyed by path."""

    def __init__(self, assets: Iterable[Asset] = ()) -> None:
        items: dict[str, Asset] = {}
        for asset in assets:
            if not isinstance(asset, Asset):
                raise InvalidAssetError(f"Not an Asset: {asset!r}")
            if asset.path in items:
                raise DuplicatePathError(asset.path)
            items[asset.path] = asset
        self._assets = items

    @classmethod
    def from_mapping(cls, files: Mapping[str, bytes]) -> AssetCollection:
        """Create from a path -> content mapping."""
        return cls(Asset(path, content) for path, content in files.items())

    @classmethod
    def from_directory(
        cls,
        source_dir: Path,
        limits: SecurityLimits | None = None,
    ) -> AssetCollection:
        """Stage every file of a pass source directory.

        Hidden files and stale manifest/signature files are skipped.

        Args:
            source_dir: Pass source directory (e.g. ``Event.pass``)
            limits: Security limits

        Returns:
            AssetCollection in sorted path order

        Raises:
            InvalidAssetError: If the directory is missing, a file escapes it,
                or a security limit is exceeded
        """
        limits = limits or SecurityLimits()
        source_dir = Path(source_dir)

        if not source_dir.is_dir():
            raise InvalidAssetError(f"Pass source directory not found: {source_dir}")

        assets: list[Asset] = []
        for file_path in sorted(source_dir.rglob("*")):
            if not file_path.is_file():
                continue

            rel_parts = file_path.relative_to(source_dir).parts
            if any(part.startswith(".") for part in rel_parts):
                continue
            if len(rel_parts) == 1 and rel_parts[0] in RESERVED_NAMES:
                logger.debug("Skipping stale %s in %s", rel_parts[0], source_dir)
                continue

            safe_path = check_path_safety(file_path, source_dir)
            size = safe_path.stat().st_size
            if size > limits.max_file_size:
                raise InvalidAssetError(
                    f"File too large: {file_path} ({size} bytes > {limits.max_file_size})"
                )

            assets.append(Asset(relative_asset_path(file_path, source_dir), safe_path.read_bytes()))
            if len(assets) > limits.max_assets:
                raise InvalidAssetError(
                    f"Too many files in pass source: {len(assets)} > {limits.max_assets}"
                )

        logger.debug("Staged %d assets from %s", len(assets), source_dir)
        return cls(assets)

    def with_pass_definition(self, definition: bytes | Mapping[str, Any]) -> AssetCollection:
        """Return a copy where pass.json is replaced by the given definition.

        Args:
            definition: Raw pass.json bytes, or a mapping to serialize

        Returns:
            New AssetCollection; pass.json keeps its position if it existed
        """
        if isinstance(definition, Mapping):
            content = json.dumps(definition, indent=2, ensure_ascii=False).encode("utf-8")
        else:
            content = bytes(definition)

        replacement = Asset(PASS_DEFINITION_NAME, content)
        assets = [
            replacement if asset.path == PASS_DEFINITION_NAME else asset
            for asset in self
        ]
        if PASS_DEFINITION_NAME not in self:
            assets.append(replacement)
        return AssetCollection(assets)

    def get(self, path: str) -> Asset | None:
        return self._assets.get(path)

    def paths(self) -> list[str]:
        return list(self._assets)

    def total_size(self) -> int:
        return sum(asset.size for asset in self)

    def __iter__(self) -> Iterator[Asset]:
        return iter(self._assets.values())

    def __len__(self) -> int:
        return len(self._assets)

    def __contains__(self, path: object) -> bool:
        return path in self._assets

    def __repr__(self) -> str:
        return f"AssetCollection({self.paths()!r})"


def _require_json_object(assets: AssetCollection, name: str, required: bool) -> None:
    asset = assets.get(name)
    if asset is None:
        if required:
            raise InvalidAssetError(
                f"{name} not found; provide it in the source directory or as a pass definition"
            )
        return

    try:
        data = json.loads(asset.content.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise InvalidAssetError(f"{name} invalid: {e}") from e

    if not isinstance(data, dict):
        raise InvalidAssetError(f"{name} invalid: top level must be a JSON object")


def require_pass_definition(assets: AssetCollection) -> None:
    """Check the collection carries a parseable pass.json.

    personalization.json is checked the same way when present. Field
    contents are not validated.

    Raises:
        InvalidAssetError: If pass.json is missing or not a JSON object
    """
    _require_json_object(assets, PASS_DEFINITION_NAME, required=True)
    _require_json_object(assets, PERSONALIZATION_NAME, required=False)
