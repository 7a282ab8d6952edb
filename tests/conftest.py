"""Shared fixtures: a throwaway PKI and sample pass assets."""

from __future__ import annotations

import json
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from cryptography.hazmat.primitives.serialization import pkcs12
from cryptography.x509.oid import NameOID

from passbundle.assets import Asset, AssetCollection
from passbundle.identity import KeystoreIdentity

NOW = datetime.now(UTC)

PASS_JSON = json.dumps({
    "formatVersion": 1,
    "passTypeIdentifier": "pass.com.example.event",
    "teamIdentifier": "ABCDE12345",
    "serialNumber": "0001",
    "organizationName": "Example",
    "description": "Example event ticket",
}, indent=2).encode("utf-8")

ICON_PNG = b"\x89PNG\r\n\x1a\n" + bytes(range(256)) * 4


def _name(common_name: str) -> x509.Name:
    return x509.Name([
        x509.NameAttribute(NameOID.COMMON_NAME, common_name),
        x509.NameAttribute(NameOID.ORGANIZATION_NAME, "Passbundle Test"),
    ])


def make_cert(
    common_name: str,
    key,
    issuer: x509.Certificate | None = None,
    issuer_key=None,
    not_before: datetime | None = None,
    not_after: datetime | None = None,
    ca: bool = False,
) -> x509.Certificate:
    """Issue a certificate; self-signed when no issuer is given."""
    subject = _name(common_name)
    builder = (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(issuer.subject if issuer is not None else subject)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(not_before or NOW - timedelta(days=1))
        .not_valid_after(not_after or NOW + timedelta(days=365))
        .add_extension(x509.BasicConstraints(ca=ca, path_length=None), critical=True)
    )
    return builder.sign(issuer_key if issuer_key is not None else key, hashes.SHA256())


def rsa_key(bits: int = 2048):
    return rsa.generate_private_key(public_exponent=65537, key_size=bits)


class PKI:
    """Root -> intermediate (WWDR stand-in) -> pass type leaf."""

    def __init__(self) -> None:
        self.root_key = rsa_key()
        self.root = make_cert("Test Root CA", self.root_key, ca=True)

        self.wwdr_key = rsa_key()
        self.wwdr = make_cert("Test WWDR", self.wwdr_key, self.root, self.root_key, ca=True)

        self.leaf_key = rsa_key()
        self.leaf = make_cert("Pass Type ID: pass.com.example.event", self.leaf_key, self.wwdr, self.wwdr_key)

    def issue(self, common_name: str, key, **kwargs) -> x509.Certificate:
        return make_cert(common_name, key, self.wwdr, self.wwdr_key, **kwargs)

    def identity(self) -> KeystoreIdentity:
        return KeystoreIdentity.from_key(self.leaf, self.leaf_key, [self.wwdr])


@pytest.fixture(scope="session")
def pki() -> PKI:
    return PKI()


@pytest.fixture(scope="session")
def identity(pki: PKI) -> KeystoreIdentity:
    return pki.identity()


@pytest.fixture(scope="session")
def expired_identity(pki: PKI) -> KeystoreIdentity:
    key = rsa_key()
    cert = pki.issue(
        "Expired Pass Type",
        key,
        not_before=NOW - timedelta(days=400),
        not_after=NOW - timedelta(days=1),
    )
    return KeystoreIdentity.from_key(cert, key, [pki.wwdr])


@pytest.fixture(scope="session")
def ec_identity(pki: PKI) -> KeystoreIdentity:
    key = ec.generate_private_key(ec.SECP256R1())
    cert = pki.issue("EC Pass Type", key)
    return KeystoreIdentity.from_key(cert, key, [pki.wwdr])


@pytest.fixture
def pem_files(tmp_path: Path, pki: PKI) -> dict[str, Path]:
    """Leaf cert and encrypted key (PEM), WWDR (DER), and root (PEM)."""
    paths = {
        "cert": tmp_path / "pass.pem",
        "key": tmp_path / "pass.key",
        "wwdr": tmp_path / "wwdr.cer",
        "root": tmp_path / "root.pem",
    }
    paths["cert"].write_bytes(pki.leaf.public_bytes(serialization.Encoding.PEM))
    paths["key"].write_bytes(pki.leaf_key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.BestAvailableEncryption(b"secret"),
    ))
    paths["wwdr"].write_bytes(pki.wwdr.public_bytes(serialization.Encoding.DER))
    paths["root"].write_bytes(pki.root.public_bytes(serialization.Encoding.PEM))
    return paths


@pytest.fixture
def p12_file(tmp_path: Path, pki: PKI) -> Path:
    path = tmp_path / "pass.p12"
    path.write_bytes(pkcs12.serialize_key_and_certificates(
        b"pass",
        pki.leaf_key,
        pki.leaf,
        None,
        serialization.BestAvailableEncryption(b"secret"),
    ))
    return path


@pytest.fixture
def p12_with_chain_file(tmp_path: Path, pki: PKI) -> Path:
    """A .p12 that bundles the WWDR intermediate, as Keychain exports do."""
    path = tmp_path / "bundled.p12"
    path.write_bytes(pkcs12.serialize_key_and_certificates(
        b"pass",
        pki.leaf_key,
        pki.leaf,
        [pki.wwdr],
        serialization.BestAvailableEncryption(b"secret"),
    ))
    return path


@pytest.fixture
def assets() -> AssetCollection:
    return AssetCollection([
        Asset("pass.json", PASS_JSON),
        Asset("icon.png", ICON_PNG),
        Asset("en.lproj/pass.strings", b'"EVENT" = "Event";\n'),
    ])


@pytest.fixture
def pass_dir(tmp_path: Path) -> Path:
    """A staged pass source directory."""
    source = tmp_path / "Event.pass"
    (source / "en.lproj").mkdir(parents=True)
    (source / "pass.json").write_bytes(PASS_JSON)
    (source / "icon.png").write_bytes(ICON_PNG)
    (source / "icon@2x.png").write_bytes(ICON_PNG * 2)
    (source / "en.lproj" / "pass.strings").write_bytes(b'"EVENT" = "Event";\n')
    return source
