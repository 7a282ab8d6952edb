"""Packaging of assets, manifest, and signature into a .pkpass archive.

Bundle layout (ZIP, DEFLATE):
    icon.png                # every asset at its relative path, in collection order
    pass.json
    en.lproj/pass.strings
    manifest.json           # canonical manifest, byte-identical to what was signed
    signature               # DER PKCS#7 detached signature

The archive is assembled in memory, so a failure never leaves a partial
file behind. Entries carry a fixed timestamp and mode.
"""

from __future__ import annotations

import contextlib
import io
import logging
import os
import tempfile
import zipfile
from dataclasses import dataclass
from pathlib import Path

from passbundle.assets import Asset, AssetCollection
from passbundle.errors import DuplicatePathError, PackagingError, ReservedPathConflictError
from passbundle.layout import (
    MANIFEST_NAME,
    RESERVED_NAMES,
    SIGNATURE_NAME,
    ZIP_EPOCH,
    ZIP_FILE_MODE,
)
from passbundle.manifest import Manifest
from passbundle.security import SecurityLimits, validate_asset_path
from passbundle.signing import Signature

logger = logging.getLogger(__name__)

DEFAULT_COMPRESSLEVEL = 9


@dataclass(frozen=True)
class UnpackedBundle:
    """Contents of a bundle split into reserved entries and assets."""

    manifest_bytes: bytes | None
    signature_bytes: bytes | None
    assets: AssetCollection


@dataclass(frozen=True)
class Bundle:
    """A finished .pkpass archive held in memory."""

    data: bytes
    entries: tuple[str, ...]

    @property
    def size(self) -> int:
        return len(self.data)

    def write(self, path: Path) -> Path:
        """Write the archive atomically.

        The data goes to a temporary file in the target directory, which
        is then renamed over ``path``.

        Returns:
            Path written
        """
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(self.data)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, path)
        except BaseException:
            with contextlib.suppress(FileNotFoundError):
                os.unlink(tmp_name)
            raise

        logger.debug("Wrote bundle %s (%d bytes)", path, self.size)
        return path

    @classmethod
    def read(cls, path: Path) -> Bundle:
        """Load an archive from disk.

        Raises:
            PackagingError: If the file is not a ZIP archive
        """
        data = Path(path).read_bytes()
        return cls.from_bytes(data)

    @classmethod
    def from_bytes(cls, data: bytes) -> Bundle:
        try:
            with zipfile.ZipFile(io.BytesIO(data)) as zf:
                entries = tuple(zf.namelist())
        except zipfile.BadZipFile as e:
            raise PackagingError(f"Not a pass bundle archive: {e}") from e
        return cls(data=data, entries=entries)

    def unpack(self, limits: SecurityLimits | None = None) -> UnpackedBundle:
        """Split the archive into manifest, signature, and assets.

        Raises:
            InvalidAssetError: If an entry name is unsafe or duplicated
            PackagingError: If an entry exceeds the size limit
        """
        limits = limits or SecurityLimits()
        manifest_bytes: bytes | None = None
        signature_bytes: bytes | None = None
        assets: list[Asset] = []
        seen: set[str] = set()

        with zipfile.ZipFile(io.BytesIO(self.data)) as zf:
            for info in zf.infolist():
                if info.is_dir():
                    continue

                name = validate_asset_path(info.filename)
                if name in seen:
                    raise DuplicatePathError(name)
                seen.add(name)

                if info.file_size > limits.max_file_size:
                    raise PackagingError(
                        f"Bundle entry too large: {name} ({info.file_size} bytes)"
                    )

                content = zf.read(info)
                if name == MANIFEST_NAME:
                    manifest_bytes = content
                elif name == SIGNATURE_NAME:
                    signature_bytes = content
                else:
                    assets.append(Asset(name, content))

        return UnpackedBundle(
            manifest_bytes=manifest_bytes,
            signature_bytes=signature_bytes,
            assets=AssetCollection(assets),
        )


def _entry_info(name: str) -> zipfile.ZipInfo:
    info = zipfile.ZipInfo(name, date_time=ZIP_EPOCH)
    info.compress_type = zipfile.ZIP_DEFLATED
    info.external_attr = ZIP_FILE_MODE << 16
    info.create_system = 3  # unix, so external_attr is honoured
    return info


def package(
    assets: AssetCollection,
    manifest: Manifest,
    signature: Signature,
    compresslevel: int = DEFAULT_COMPRESSLEVEL,
) -> Bundle:
    """Assemble the .pkpass archive.

    Args:
        assets: Assets, written at their original paths in collection order
        manifest: Manifest; its canonical bytes are stored as manifest.json
        signature: Signature over those bytes, stored as signature
        compresslevel: DEFLATE level 0-9; does not affect stored content

    Returns:
        Bundle

    Raises:
        ReservedPathConflictError: If an asset is named manifest.json or signature
        PackagingError: If the compression level is out of range
    """
    if not 0 <= compresslevel <= 9:
        raise PackagingError(f"compresslevel must be 0-9, got {compresslevel}")

    for asset in assets:
        if asset.path in RESERVED_NAMES:
            raise ReservedPathConflictError(asset.path)

    buffer = io.BytesIO()
    entries: list[str] = []
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        for asset in assets:
            zf.writestr(_entry_info(asset.path), asset.content, compresslevel=compresslevel)
            entries.append(asset.path)
        zf.writestr(_entry_info(MANIFEST_NAME), manifest.to_bytes(), compresslevel=compresslevel)
        entries.append(MANIFEST_NAME)
        zf.writestr(_entry_info(SIGNATURE_NAME), signature.to_bytes(), compresslevel=compresslevel)
        entries.append(SIGNATURE_NAME)

    bundle = Bundle(data=buffer.getvalue(), entries=tuple(entries))
    logger.debug("Packaged %d entries into %d bytes", len(entries), bundle.size)
    return bundle
