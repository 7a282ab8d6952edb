"""
Configuration for pass bundle production.

Supports:
- Environment variable configuration
- YAML file configuration
- Runtime overrides via from_dict
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

from passbundle.errors import ConfigError
from passbundle.identity import load_certificates
from passbundle.packager import DEFAULT_COMPRESSLEVEL
from passbundle.security import DEFAULT_MAX_ASSETS, DEFAULT_MAX_FILE_SIZE, SecurityLimits
from passbundle.signing import DIGEST_ALGORITHMS, KEY_TYPES, KeyPolicy, Signer


@dataclass
class PassbundleConfig:
    """
    Settings for building and signing bundles.

    Defaults produce bundles Wallet accepts:
    - RSA keys of at least 2048 bits
    - SHA-256 signature digest
    - Maximum DEFLATE compression
    """

    compresslevel: int = DEFAULT_COMPRESSLEVEL
    digest_workers: int = 1

    # Signing
    signature_digest: str = "sha256"
    allowed_key_types: tuple[str, ...] = ("rsa",)
    min_rsa_bits: int = 2048
    trust_roots: tuple[Path, ...] = ()

    # Staging limits
    max_file_size: int = DEFAULT_MAX_FILE_SIZE
    max_assets: int = DEFAULT_MAX_ASSETS

    # Extra keys from YAML that are not settings
    extra: dict[str, Any] = field(default_factory=dict, repr=False)

    def __post_init__(self):
        """Validate configuration after initialization."""
        self.allowed_key_types = tuple(k.lower() for k in self.allowed_key_types)
        self.trust_roots = tuple(Path(p) for p in self.trust_roots)
        self.signature_digest = self.signature_digest.lower()

        if not 0 <= self.compresslevel <= 9:
            raise ConfigError(f"compresslevel must be 0-9, got {self.compresslevel}")

        if self.digest_workers < 1:
            raise ConfigError(f"digest_workers must be >= 1, got {self.digest_workers}")

        if self.signature_digest not in DIGEST_ALGORITHMS:
            raise ConfigError(
                f"signature_digest must be one of {sorted(DIGEST_ALGORITHMS)}, "
                f"got {self.signature_digest}"
            )

        unknown = [k for k in self.allowed_key_types if k not in KEY_TYPES]
        if unknown or not self.allowed_key_types:
            raise ConfigError(f"allowed_key_types must be a non-empty subset of {KEY_TYPES}")

        if self.min_rsa_bits < 1024:
            raise ConfigError(f"min_rsa_bits must be >= 1024, got {self.min_rsa_bits}")

        if self.max_file_size < 1 or self.max_assets < 1:
            raise ConfigError("max_file_size and max_assets must be positive")

    @classmethod
    def from_env(cls) -> PassbundleConfig:
        """
        Create configuration from environment variables.

        Environment variables:
            PASSBUNDLE_COMPRESSLEVEL: DEFLATE level (0-9)
            PASSBUNDLE_DIGEST_WORKERS: Threads used for asset hashing
            PASSBUNDLE_SIGNATURE_DIGEST: sha224/sha256/sha384/sha512
            PASSBUNDLE_KEY_TYPES: Comma separated key types (rsa,ec)
            PASSBUNDLE_MIN_RSA_BITS: Minimum RSA modulus size
            PASSBUNDLE_TRUST_ROOTS: os.pathsep separated root certificate files
        """
        try:
            compresslevel = int(os.getenv("PASSBUNDLE_COMPRESSLEVEL", str(DEFAULT_COMPRESSLEVEL)))
            workers = int(os.getenv("PASSBUNDLE_DIGEST_WORKERS", "1"))
            min_rsa_bits = int(os.getenv("PASSBUNDLE_MIN_RSA_BITS", "2048"))
        except ValueError as e:
            raise ConfigError(f"Invalid integer in environment: {e}") from e

        key_types = os.getenv("PASSBUNDLE_KEY_TYPES", "rsa")
        roots = os.getenv("PASSBUNDLE_TRUST_ROOTS", "")

        return cls(
            compresslevel=compresslevel,
            digest_workers=workers,
            signature_digest=os.getenv("PASSBUNDLE_SIGNATURE_DIGEST", "sha256"),
            allowed_key_types=tuple(k.strip() for k in key_types.split(",") if k.strip()),
            min_rsa_bits=min_rsa_bits,
            trust_roots=tuple(Path(p) for p in roots.split(os.pathsep) if p),
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PassbundleConfig:
        """Create configuration from dictionary (e.g., YAML)."""
        known = {f.name for f in fields(cls)} - {"extra"}
        kwargs = {k: v for k, v in data.items() if k in known}
        extra = {k: v for k, v in data.items() if k not in known}

        for key in ("allowed_key_types", "trust_roots"):
            if key in kwargs:
                value = kwargs[key]
                kwargs[key] = tuple([value] if isinstance(value, str) else value)

        try:
            return cls(**kwargs, extra=extra)
        except (TypeError, AttributeError) as e:
            raise ConfigError(f"Invalid configuration: {e}") from e

    @classmethod
    def from_yaml(cls, path: Path) -> PassbundleConfig:
        """Load configuration from a YAML file.

        Relative trust root paths are resolved against the file's directory.
        """
        path = Path(path)
        try:
            with open(path, encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except OSError as e:
            raise ConfigError(f"Cannot read config {path}: {e}") from e
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigError(f"Config {path} must be a mapping")

        config = cls.from_dict(data)
        config.trust_roots = tuple(
            root if root.is_absolute() else path.parent / root for root in config.trust_roots
        )
        return config

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary."""
        return {
            "compresslevel": self.compresslevel,
            "digest_workers": self.digest_workers,
            "signature_digest": self.signature_digest,
            "allowed_key_types": list(self.allowed_key_types),
            "min_rsa_bits": self.min_rsa_bits,
            "trust_roots": [str(p) for p in self.trust_roots],
            "max_file_size": self.max_file_size,
            "max_assets": self.max_assets,
        }

    def key_policy(self) -> KeyPolicy:
        return KeyPolicy(
            allowed_key_types=self.allowed_key_types,
            min_rsa_bits=self.min_rsa_bits,
            digest_algorithm=self.signature_digest,
        )

    def limits(self) -> SecurityLimits:
        return SecurityLimits(max_file_size=self.max_file_size, max_assets=self.max_assets)

    def signer(self) -> Signer:
        """Build a Signer with the configured policy and trust roots."""
        roots = [cert for path in self.trust_roots for cert in load_certificates(path)]
        return Signer(policy=self.key_policy(), trust_roots=roots)


DEFAULT_CONFIG = PassbundleConfig()
