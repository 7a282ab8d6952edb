"""Bundle production pipeline: validate -> manifest -> sign -> package.

Each stage takes the previous stage's output as an argument. The first
failure stops the run and is re-raised as PipelineError carrying the
stage and the original error, so nothing after a failed stage runs and
no partial bundle is returned or written.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from pathlib import Path
from typing import Any, TypeVar

from passbundle.assets import Asset, AssetCollection, require_pass_definition
from passbundle.config import DEFAULT_CONFIG, PassbundleConfig
from passbundle.errors import InvalidAssetError, PassbundleError, PipelineError, Stage
from passbundle.identity import SigningIdentity
from passbundle.manifest import Manifest, build
from passbundle.packager import Bundle, package
from passbundle.signing import Signature, Signer

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _run_stage(stage: Stage, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    start = time.perf_counter()
    logger.debug("Stage %s started", stage.value)
    try:
        result = func(*args, **kwargs)
    except PassbundleError as e:
        logger.debug("Stage %s failed: %s", stage.value, e)
        raise PipelineError(stage, e) from e
    except OSError as e:
        raise PipelineError(stage, e) from e
    logger.debug(
        "Stage %s finished in %.1f ms", stage.value, (time.perf_counter() - start) * 1000
    )
    return result


def _validate_assets(assets: AssetCollection) -> AssetCollection:
    if not isinstance(assets, AssetCollection):
        raise InvalidAssetError(f"Expected AssetCollection, got {type(assets).__name__}")
    if len(assets) == 0:
        raise InvalidAssetError("Asset collection is empty")
    for asset in assets:
        if not isinstance(asset, Asset):
            raise InvalidAssetError(f"Not an Asset: {asset!r}")
    return assets


def produce(
    assets: AssetCollection,
    identity: SigningIdentity,
    signer: Signer | None = None,
    config: PassbundleConfig | None = None,
) -> Bundle:
    """Produce a signed bundle from an asset collection.

    Args:
        assets: Staged assets
        identity: Signing identity, borrowed for the signing stage only
        signer: Signer to use (default: built from config)
        config: Settings (default: DEFAULT_CONFIG)

    Returns:
        Bundle

    Raises:
        PipelineError: Wrapping the first stage error
    """
    config = config or DEFAULT_CONFIG

    def sign(data: bytes) -> Signature:
        return (signer or config.signer()).sign(data, identity)

    _run_stage(Stage.ASSET_VALIDATION, _validate_assets, assets)
    manifest: Manifest = _run_stage(Stage.MANIFEST, build, assets, workers=config.digest_workers)
    manifest_bytes = manifest.to_bytes()
    signature: Signature = _run_stage(Stage.SIGNING, sign, manifest_bytes)
    bundle: Bundle = _run_stage(
        Stage.PACKAGING, package, assets, manifest, signature, compresslevel=config.compresslevel
    )

    logger.info(
        "Produced bundle: %d entries, %d bytes, signed by %s",
        len(bundle.entries),
        bundle.size,
        identity.describe(),
    )
    return bundle


def produce_to(
    output: Path,
    assets: AssetCollection,
    identity: SigningIdentity,
    signer: Signer | None = None,
    config: PassbundleConfig | None = None,
) -> Bundle:
    """Produce a bundle and write it atomically to ``output``.

    A write failure is reported as a packaging stage error; ``output`` is
    left untouched in that case.
    """
    bundle = produce(assets, identity, signer=signer, config=config)
    _run_stage(Stage.PACKAGING, bundle.write, Path(output))
    logger.info("Wrote %s", output)
    return bundle


def build_from_directory(
    source_dir: Path,
    identity: SigningIdentity,
    output: Path,
    pass_definition: bytes | dict[str, Any] | None = None,
    signer: Signer | None = None,
    config: PassbundleConfig | None = None,
) -> Bundle:
    """Stage a pass source directory, then sign and write the bundle.

    Args:
        source_dir: Directory containing pass.json, images, *.lproj folders
        identity: Signing identity
        output: Target .pkpass path
        pass_definition: Replaces or supplies pass.json when given
        signer: Signer to use
        config: Settings

    Returns:
        Bundle
    """
    config = config or DEFAULT_CONFIG

    def stage() -> AssetCollection:
        assets = AssetCollection.from_directory(source_dir, limits=config.limits())
        if pass_definition is not None:
            assets = assets.with_pass_definition(pass_definition)
        require_pass_definition(assets)
        return assets

    assets = _run_stage(Stage.ASSET_VALIDATION, stage)
    return produce_to(output, assets, identity, signer=signer, config=config)
