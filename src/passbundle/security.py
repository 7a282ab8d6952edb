"""Security hardening for staged asset directories and bundle entries.

Provides limits and path checks to prevent:
- Path traversal when staging or unpacking
- Resource exhaustion from oversized or too many assets
"""

from __future__ import annotations

from pathlib import Path, PurePosixPath

from passbundle.errors import InvalidAssetError

# Default security limits
DEFAULT_MAX_FILE_SIZE = 20 * 1024 * 1024  # 20 MB
DEFAULT_MAX_ASSETS = 1000


class SecurityLimits:
    """Configurable security limits."""

    def __init__(
        self,
        max_file_size: int = DEFAULT_MAX_FILE_SIZE,
        max_assets: int = DEFAULT_MAX_ASSETS,
    ) -> None:
        self.max_file_size = max_file_size
        self.max_assets = max_assets


def validate_asset_path(path: str) -> str:
    """Verify an asset path is a safe, relative, slash-separated path.

    Args:
        path: Candidate bundle-relative path

    Returns:
        The path, unchanged

    Raises:
        InvalidAssetError: If the path is empty, absolute, or escapes the bundle
    """
    if not isinstance(path, str) or not path:
        raise InvalidAssetError(f"Asset path must be a non-empty string: {path!r}")
    if "\\" in path:
        raise InvalidAssetError(f"Asset path must use forward slashes: {path}")
    if path.startswith("/"):
        raise InvalidAssetError(f"Absolute asset path: {path}")
    if "\x00" in path:
        raise InvalidAssetError(f"NUL byte in asset path: {path!r}")

    for segment in path.split("/"):
        if segment in ("", ".", ".."):
            raise InvalidAssetError(f"Invalid segment in asset path: {path}")

    return path


def check_path_safety(path: Path, base_dir: Path) -> Path:
    """Verify a file resolves inside base_dir.

    Args:
        path: Path to check
        base_dir: Allowed base directory

    Returns:
        Resolved path

    Raises:
        InvalidAssetError: If path traversal detected
    """
    resolved = path.resolve()
    base_resolved = base_dir.resolve()
    try:
        resolved.relative_to(base_resolved)
    except ValueError:
        raise InvalidAssetError(
            f"Path traversal detected: {path} is outside {base_dir}"
        )
    return resolved


def relative_asset_path(path: Path, base_dir: Path) -> str:
    """Convert a file under base_dir into a validated bundle path."""
    rel = PurePosixPath(*path.relative_to(base_dir).parts).as_posix()
    return validate_asset_path(rel)
