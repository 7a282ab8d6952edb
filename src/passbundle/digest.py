"""Content digests for bundle assets.

Wallet verifies each manifest entry with SHA-1 over the raw file bytes,
so the algorithm is fixed here rather than configurable.
"""

from __future__ import annotations

import hashlib
from collections.abc import Iterable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass

from passbundle.assets import Asset

DIGEST_ALGORITHM = "sha1"
DIGEST_SIZE = 20


@dataclass(frozen=True)
class Digest:
    """Raw digest bytes of one asset."""

    value: bytes

    @property
    def hex(self) -> str:
        return self.value.hex()

    @classmethod
    def from_hex(cls, text: str) -> Digest:
        value = bytes.fromhex(text)
        if len(value) != DIGEST_SIZE:
            raise ValueError(f"Expected {DIGEST_SIZE}-byte digest, got {len(value)}")
        return cls(value)

    def __str__(self) -> str:
        return self.hex


def digest_bytes(content: bytes) -> Digest:
    return Digest(hashlib.new(DIGEST_ALGORITHM, content).digest())


def digest(asset: Asset) -> Digest:
    """Compute the manifest digest of an asset."""
    return digest_bytes(asset.content)


def digest_all(assets: Iterable[Asset], workers: int = 1) -> list[tuple[str, Digest]]:
    """Digest many assets, optionally on a thread pool.

    hashlib releases the GIL for large buffers, so threads help with big
    images. Results always come back in input order.

    Args:
        assets: Assets to hash
        workers: Thread count; 1 hashes inline

    Returns:
        (path, digest) pairs in input order
    """
    items = list(assets)
    if workers <= 1 or len(items) < 2:
        return [(asset.path, digest(asset)) for asset in items]

    with ThreadPoolExecutor(max_workers=workers) as pool:
        digests = list(pool.map(digest, items))
    return [(asset.path, d) for asset, d in zip(items, digests)]
