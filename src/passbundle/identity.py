"""Signing identities backed by file-based keystores.

A SigningIdentity is a capability: it exposes the public certificates and
lends its private key for the duration of one sign call via
``borrow_key()``. Backends that keep keys elsewhere (an OS keychain, a
token) implement the same interface.
"""

from __future__ import annotations

import contextlib
import logging
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterator, Sequence
from pathlib import Path

from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.types import PrivateKeyTypes
from cryptography.hazmat.primitives.serialization import pkcs12

from passbundle.errors import SigningBackendError, UntrustedIdentityError

logger = logging.getLogger(__name__)


def _password_bytes(password: str | bytes | None) -> bytes | None:
    if password is None or isinstance(password, bytes):
        return password
    return password.encode("utf-8")


def load_certificates(path: Path) -> list[x509.Certificate]:
    """Load one or more certificates from a PEM or DER file.

    Args:
        path: Certificate file (e.g. the Apple WWDR intermediate)

    Returns:
        Certificates in file order

    Raises:
        SigningBackendError: If the file cannot be read
        UntrustedIdentityError: If it holds no parseable certificate
    """
    try:
        data = Path(path).read_bytes()
    except OSError as e:
        raise SigningBackendError(f"Cannot read certificate file {path}: {e}") from e

    try:
        if b"-----BEGIN" in data:
            return x509.load_pem_x509_certificates(data)
        return [x509.load_der_x509_certificate(data)]
    except ValueError as e:
        raise UntrustedIdentityError(f"Malformed certificate in {path}: {e}") from e


def unique_certificates(certificates: Sequence[x509.Certificate]) -> tuple[x509.Certificate, ...]:
    """Drop repeated certificates, keeping first occurrences in order."""
    unique: list[x509.Certificate] = []
    for cert in certificates:
        if cert not in unique:
            unique.append(cert)
    return tuple(unique)


class SigningIdentity(ABC):
    """Private key + certificate + chain, lent out for single sign operations."""

    @property
    @abstractmethod
    def certificate(self) -> x509.Certificate:
        """Signer (leaf) certificate."""

    @property
    def chain(self) -> tuple[x509.Certificate, ...]:
        """Intermediate certificates, in any order."""
        return ()

    @abstractmethod
    def borrow_key(self) -> contextlib.AbstractContextManager[PrivateKeyTypes]:
        """Lend the private key for one signing call."""

    def describe(self) -> str:
        """Human readable subject, safe to log."""
        return self.certificate.subject.rfc4514_string()


class KeystoreIdentity(SigningIdentity):
    """Identity whose key is (re)loaded from a keystore on every borrow."""

    def __init__(
        self,
        certificate: x509.Certificate,
        key_loader: Callable[[], PrivateKeyTypes],
        chain: Sequence[x509.Certificate] = (),
    ) -> None:
        self._certificate = certificate
        self._key_loader = key_loader
        self._chain = tuple(c for c in unique_certificates(chain) if c != certificate)

    @property
    def certificate(self) -> x509.Certificate:
        return self._certificate

    @property
    def chain(self) -> tuple[x509.Certificate, ...]:
        return self._chain

    @contextlib.contextmanager
    def borrow_key(self) -> Iterator[PrivateKeyTypes]:
        key = self._key_loader()
        try:
            yield key
        finally:
            del key

    @classmethod
    def from_key(
        cls,
        certificate: x509.Certificate,
        private_key: PrivateKeyTypes,
        chain: Sequence[x509.Certificate] = (),
    ) -> KeystoreIdentity:
        """Wrap an already loaded key object."""
        return cls(certificate, lambda: private_key, chain)

    @classmethod
    def from_pkcs12(
        cls,
        path: Path,
        password: str | bytes | None = None,
        chain: Sequence[x509.Certificate] = (),
    ) -> KeystoreIdentity:
        """Open a .p12 pass type certificate export.

        Certificates bundled in the .p12 are appended after ``chain``;
        repeats are dropped.

        Raises:
            SigningBackendError: If the keystore cannot be read
            UntrustedIdentityError: If it cannot be decoded or lacks a key/cert
        """
        path = Path(path)
        secret = _password_bytes(password)

        def load() -> tuple[PrivateKeyTypes, x509.Certificate, list[x509.Certificate]]:
            try:
                data = path.read_bytes()
            except OSError as e:
                raise SigningBackendError(f"Cannot read keystore {path}: {e}") from e
            try:
                key, cert, extra = pkcs12.load_key_and_certificates(data, secret)
            except ValueError as e:
                raise UntrustedIdentityError(f"Cannot decode keystore {path}: {e}") from e
            if key is None or cert is None:
                raise UntrustedIdentityError(f"Keystore {path} lacks a private key or certificate")
            return key, cert, list(extra)

        _, certificate, bundled = load()
        logger.debug("Loaded keystore %s (%d bundled certificates)", path, len(bundled))
        return cls(certificate, lambda: load()[0], [*chain, *bundled])

    @classmethod
    def from_pem(
        cls,
        cert_path: Path,
        key_path: Path,
        password: str | bytes | None = None,
        chain: Sequence[x509.Certificate] = (),
    ) -> KeystoreIdentity:
        """Open a PEM certificate and PEM private key pair.

        Raises:
            SigningBackendError: If a file cannot be read
            UntrustedIdentityError: If the certificate or key is malformed
        """
        key_path = Path(key_path)
        secret = _password_bytes(password)
        certs = load_certificates(cert_path)

        def load_key() -> PrivateKeyTypes:
            try:
                data = key_path.read_bytes()
            except OSError as e:
                raise SigningBackendError(f"Cannot read private key {key_path}: {e}") from e
            try:
                return serialization.load_pem_private_key(data, secret)
            except (ValueError, TypeError) as e:
                raise UntrustedIdentityError(f"Cannot decode private key {key_path}: {e}") from e

        # Fail early on a bad key file or password
        load_key()
        return cls(certs[0], load_key, [*certs[1:], *chain])
