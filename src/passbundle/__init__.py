"""Build and sign Apple Wallet pass bundles (.pkpass).

Pipeline: asset collection -> SHA-1 digests -> manifest.json ->
detached PKCS#7 signature -> ZIP archive.
"""

from __future__ import annotations

__version__ = "0.3.0"

from passbundle.assets import Asset, AssetCollection, require_pass_definition
from passbundle.config import PassbundleConfig
from passbundle.digest import Digest, digest
from passbundle.errors import (
    ConfigError,
    DuplicatePathError,
    InvalidAssetError,
    PackagingError,
    PassbundleError,
    PipelineError,
    ReservedPathConflictError,
    SigningBackendError,
    SigningError,
    Stage,
    UnsupportedAlgorithmError,
    UntrustedIdentityError,
    VerificationError,
)
from passbundle.identity import KeystoreIdentity, SigningIdentity, load_certificates
from passbundle.manifest import Manifest, build
from passbundle.packager import Bundle, UnpackedBundle, package
from passbundle.pipeline import build_from_directory, produce, produce_to
from passbundle.signing import KeyPolicy, Signature, Signer
from passbundle.verifier import BundleVerifier, VerificationResult

__all__ = [
    "__version__",
    "Asset",
    "AssetCollection",
    "Bundle",
    "BundleVerifier",
    "ConfigError",
    "Digest",
    "DuplicatePathError",
    "InvalidAssetError",
    "KeyPolicy",
    "KeystoreIdentity",
    "Manifest",
    "PackagingError",
    "PassbundleConfig",
    "PassbundleError",
    "PipelineError",
    "ReservedPathConflictError",
    "Signature",
    "Signer",
    "SigningBackendError",
    "SigningError",
    "SigningIdentity",
    "Stage",
    "UnpackedBundle",
    "UnsupportedAlgorithmError",
    "UntrustedIdentityError",
    "VerificationError",
    "VerificationResult",
    "build",
    "build_from_directory",
    "digest",
    "load_certificates",
    "package",
    "produce",
    "produce_to",
    "require_pass_definition",
]
