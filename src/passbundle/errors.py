"""Error taxonomy for pass bundle production.

Every stage raises a typed error so callers can tell which of asset
validation, signing, or packaging failed. The orchestrator wraps stage
errors in PipelineError without changing their kind.
"""

from __future__ import annotations

from enum import Enum


class PassbundleError(Exception):
    """Base class for all passbundle errors."""
    pass


class ConfigError(PassbundleError):
    """Invalid configuration value."""
    pass


class InvalidAssetError(PassbundleError):
    """Malformed asset path or unusable asset content."""
    pass


class DuplicatePathError(InvalidAssetError):
    """Two assets share the same relative path."""

    def __init__(self, path: str) -> None:
        super().__init__(f"Duplicate asset path: {path}")
        self.path = path


class SigningError(PassbundleError):
    """Base class for signing-stage failures."""
    pass


class UntrustedIdentityError(SigningError):
    """Certificate chain is expired, broken, or not anchored to a trusted root."""
    pass


class UnsupportedAlgorithmError(SigningError):
    """Key type, key size, or digest algorithm not accepted for pass signatures."""
    pass


class SigningBackendError(SigningError):
    """The credential backend or the CMS builder failed."""
    pass


class VerificationError(PassbundleError):
    """A signature does not cover the content it is checked against."""
    pass


class PackagingError(PassbundleError):
    """Base class for packaging-stage failures."""
    pass


class ReservedPathConflictError(PackagingError):
    """An asset uses a name reserved for the manifest or the signature."""

    def __init__(self, path: str) -> None:
        super().__init__(f"Asset path collides with reserved bundle entry: {path}")
        self.path = path


class Stage(Enum):
    """Pipeline stages, in execution order."""
    ASSET_VALIDATION = "asset_validation"
    MANIFEST = "manifest"
    SIGNING = "signing"
    PACKAGING = "packaging"


class PipelineError(PassbundleError):
    """Stage failure surfaced by the orchestrator.

    Attributes:
        stage: Stage that failed
        cause: Original error raised by that stage
    """

    def __init__(self, stage: Stage, cause: BaseException) -> None:
        super().__init__(f"{stage.value} failed: {type(cause).__name__}: {cause}")
        self.stage = stage
        self.cause = cause

    @property
    def kind(self) -> str:
        """Class name of the originating error."""
        return type(self.cause).__name__
