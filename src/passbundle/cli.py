"""passctl - build, inspect, and verify Wallet pass bundles."""

from __future__ import annotations

import dataclasses
import logging
import sys
import traceback
from pathlib import Path

import click

from passbundle import __version__
from passbundle.assets import AssetCollection
from passbundle.config import PassbundleConfig
from passbundle.errors import PassbundleError, PipelineError
from passbundle.identity import KeystoreIdentity, SigningIdentity, load_certificates
from passbundle.manifest import build
from passbundle.pipeline import build_from_directory
from passbundle.verifier import BundleVerifier


def handle_error(error: Exception, debug: bool) -> None:
    """Handle errors with structured output.

    Args:
        error: The exception that occurred
        debug: Whether to show full traceback
    """
    if debug:
        traceback.print_exc()
    elif isinstance(error, PipelineError):
        click.echo(f"Error [{error.stage.value}/{error.kind}]: {error.cause}", err=True)
    else:
        click.echo(f"Error: {error}", err=True)
    sys.exit(1)


def load_config(config_path: Path | None) -> PassbundleConfig:
    """Load YAML config if given, otherwise from environment."""
    if config_path is not None:
        return PassbundleConfig.from_yaml(config_path)
    return PassbundleConfig.from_env()


def load_identity(
    p12: Path | None,
    password: str | None,
    cert: Path | None,
    key: Path | None,
    wwdr: tuple[Path, ...],
) -> SigningIdentity:
    """Open the signing identity from CLI options."""
    chain = [c for path in wwdr for c in load_certificates(path)]

    if p12 is not None:
        if cert is not None or key is not None:
            raise click.UsageError("Use either --p12 or --cert/--key, not both")
        return KeystoreIdentity.from_pkcs12(p12, password, chain=chain)

    if cert is not None and key is not None:
        return KeystoreIdentity.from_pem(cert, key, password, chain=chain)

    raise click.UsageError("A signing identity is required: --p12, or --cert with --key")


@click.group()
@click.version_option(version=__version__, prog_name="passctl")
@click.option('--debug', is_flag=True, help='Enable debug mode (show full tracebacks)')
@click.option(
    '--log-level',
    type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR'], case_sensitive=False),
    default='WARNING',
    show_default=True,
)
@click.pass_context
def cli(ctx: click.Context, debug: bool, log_level: str):
    """passctl - Build and sign Apple Wallet pass bundles."""
    ctx.ensure_object(dict)
    ctx.obj['debug'] = debug
    logging.basicConfig(
        level=logging.DEBUG if debug else getattr(logging, log_level.upper()),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@cli.command('build')
@click.argument('source', type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.option('--out', '-o', required=True, type=click.Path(dir_okay=False, path_type=Path))
@click.option('--p12', type=click.Path(exists=True, dir_okay=False, path_type=Path), help='Pass type identity (.p12)')
@click.option('--cert', type=click.Path(exists=True, dir_okay=False, path_type=Path), help='Signer certificate (PEM)')
@click.option('--key', type=click.Path(exists=True, dir_okay=False, path_type=Path), help='Signer private key (PEM)')
@click.option(
    '--password',
    envvar='PASSBUNDLE_KEY_PASSWORD',
    help='Keystore or key password (or PASSBUNDLE_KEY_PASSWORD)',
)
@click.option(
    '--wwdr',
    multiple=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help='Intermediate certificate(s) to embed, e.g. Apple WWDR',
)
@click.option(
    '--trust-root',
    multiple=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help='Accepted root certificate(s)',
)
@click.option('--pass-json', type=click.Path(exists=True, dir_okay=False, path_type=Path), help='pass.json to use instead of the one in SOURCE')
@click.option('--config', '-c', type=click.Path(exists=True, path_type=Path), help='YAML config file')
@click.option('--workers', type=int, default=None, help='Threads used for hashing assets')
@click.pass_context
def build_command(
    ctx: click.Context,
    source: Path,
    out: Path,
    p12: Path | None,
    cert: Path | None,
    key: Path | None,
    password: str | None,
    wwdr: tuple[Path, ...],
    trust_root: tuple[Path, ...],
    pass_json: Path | None,
    config: Path | None,
    workers: int | None,
):
    """Build a signed .pkpass from a pass source directory."""
    debug = ctx.obj.get('debug', False)

    try:
        cfg = load_config(config)
        overrides = {}
        if trust_root:
            overrides['trust_roots'] = (*cfg.trust_roots, *trust_root)
        if workers is not None:
            overrides['digest_workers'] = workers
        if overrides:
            cfg = dataclasses.replace(cfg, **overrides)

        identity = load_identity(p12, password, cert, key, wwdr)
        definition = pass_json.read_bytes() if pass_json else None

        bundle = build_from_directory(source, identity, out, pass_definition=definition, config=cfg)

        click.echo(f"Built {out}")
        click.echo(f"  Entries: {len(bundle.entries)}")
        click.echo(f"  Size: {bundle.size} bytes")
        click.echo(f"  Signed by: {identity.describe()}")
    except PassbundleError as e:
        handle_error(e, debug)


@cli.command('manifest')
@click.argument('source', type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.option('--workers', type=int, default=1, show_default=True)
@click.pass_context
def manifest_command(ctx: click.Context, source: Path, workers: int):
    """Print the canonical manifest.json for a pass source directory."""
    try:
        assets = AssetCollection.from_directory(source)
        manifest = build(assets, workers=workers)
        click.echo(manifest.to_bytes().decode("utf-8"))
    except PassbundleError as e:
        handle_error(e, ctx.obj.get('debug', False))


@cli.command('verify')
@click.argument('bundle', type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    '--trust-root',
    multiple=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help='Accepted root certificate(s)',
)
@click.option('--json-out', type=click.Path(file_okay=False, path_type=Path), help='Directory for verification reports')
@click.pass_context
def verify_command(ctx: click.Context, bundle: Path, trust_root: tuple[Path, ...], json_out: Path | None):
    """Verify a .pkpass against its manifest and signature structure."""
    try:
        roots = [c for path in trust_root for c in load_certificates(path)]
        verifier = BundleVerifier(trust_roots=roots)

        if json_out:
            result, paths = verifier.verify_and_report(bundle, json_out)
        else:
            result, paths = verifier.verify(bundle), {}

        click.echo(f"Verification: {'✅ VALID' if result.valid else '❌ INVALID'}")
        click.echo(f"  Manifest: {'✅ VALID' if result.manifest_valid else '❌ INVALID'}")
        if result.signature_valid is not None:
            click.echo(f"  Signature: {'✅ VALID' if result.signature_valid else '❌ INVALID'}")
        if result.signer_subject:
            click.echo(f"  Signer: {result.signer_subject}")
        click.echo(f"  Files: {result.files_valid}/{result.files_checked} valid")
        for error in result.errors:
            click.echo(f"  - {error}")
        for name, path in paths.items():
            click.echo(f"  Report ({name}): {path}")

        if not result.valid:
            sys.exit(1)
    except PassbundleError as e:
        handle_error(e, ctx.obj.get('debug', False))


def main():
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()
