#!/usr/bin/env python3
"""Create an example pass source, a throwaway signing identity, and a bundle.

The identity is a self-signed development chain (root -> intermediate ->
pass type certificate). Wallet will not install the result, but it
exercises the full pipeline and ``passctl verify``.
Run with: python scripts/create_example_pass.py
"""

import json
import shutil
import sys
from datetime import UTC, datetime, timedelta
from pathlib import Path

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.serialization import pkcs12
from cryptography.x509.oid import NameOID

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from passbundle import BundleVerifier, KeystoreIdentity, PassbundleConfig, build_from_directory

PASSWORD = b"example"


def issue(common_name, key, issuer=None, issuer_key=None, ca=False):
    """Issue a one-year certificate; self-signed without an issuer."""
    subject = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
    now = datetime.now(UTC)
    return (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(issuer.subject if issuer else subject)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - timedelta(minutes=5))
        .not_valid_after(now + timedelta(days=365))
        .add_extension(x509.BasicConstraints(ca=ca, path_length=None), critical=True)
        .sign(issuer_key or key, hashes.SHA256())
    )


def create_identity(certs_dir: Path) -> None:
    """Write root.pem, wwdr.pem and pass.p12 into certs_dir."""
    certs_dir.mkdir(parents=True, exist_ok=True)

    root_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    root = issue("Example Root CA", root_key, ca=True)
    wwdr_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    wwdr = issue("Example WWDR", wwdr_key, root, root_key, ca=True)
    leaf_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    leaf = issue("Pass Type ID: pass.com.example.event", leaf_key, wwdr, wwdr_key)

    (certs_dir / "root.pem").write_bytes(root.public_bytes(serialization.Encoding.PEM))
    (certs_dir / "wwdr.pem").write_bytes(wwdr.public_bytes(serialization.Encoding.PEM))
    (certs_dir / "pass.p12").write_bytes(pkcs12.serialize_key_and_certificates(
        b"pass.com.example.event",
        leaf_key,
        leaf,
        [wwdr],
        serialization.BestAvailableEncryption(PASSWORD),
    ))


def create_pass_source(source_dir: Path) -> None:
    """Write pass.json, an icon, and an English localization."""
    (source_dir / "en.lproj").mkdir(parents=True, exist_ok=True)

    pass_json = {
        "formatVersion": 1,
        "passTypeIdentifier": "pass.com.example.event",
        "teamIdentifier": "ABCDE12345",
        "serialNumber": "E-0001",
        "organizationName": "Example Events",
        "description": "Example event ticket",
        "eventTicket": {
            "primaryFields": [{"key": "event", "label": "EVENT", "value": "Launch Party"}],
        },
        "barcodes": [{"format": "PKBarcodeFormatQR", "message": "E-0001", "messageEncoding": "iso-8859-1"}],
    }
    (source_dir / "pass.json").write_text(json.dumps(pass_json, indent=2), encoding="utf-8")
    # 1x1 transparent PNG
    (source_dir / "icon.png").write_bytes(bytes.fromhex(
        "89504e470d0a1a0a0000000d4948445200000001000000010806000000"
        "1f15c4890000000d49444154789c6360000002000005000157a4b3a9"
        "0000000049454e44ae426082"
    ))
    (source_dir / "en.lproj" / "pass.strings").write_text('"EVENT" = "Event";\n', encoding="utf-8")


def create_example_pass():
    """Create the example pass and verify it."""
    examples_dir = Path(__file__).parent.parent / "examples" / "example_pass"
    if examples_dir.exists():
        shutil.rmtree(examples_dir)

    certs_dir = examples_dir / "certs"
    source_dir = examples_dir / "Event.pass"
    output = examples_dir / "Event.pkpass"

    create_identity(certs_dir)
    create_pass_source(source_dir)

    identity = KeystoreIdentity.from_pkcs12(certs_dir / "pass.p12", PASSWORD)
    config = PassbundleConfig(trust_roots=(certs_dir / "root.pem",))
    bundle = build_from_directory(source_dir, identity, output, config=config)

    print(f"Created example pass: {output}")
    print(f"  Entries: {', '.join(bundle.entries)}")

    result = BundleVerifier().verify(output)
    print(f"  Verification: {'VALID' if result.valid else 'INVALID'}")
    return 0 if result.valid else 1


if __name__ == "__main__":
    raise SystemExit(create_example_pass())
