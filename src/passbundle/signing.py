"""Detached PKCS#7 signatures over pass manifests.

Wallet expects the ``signature`` entry to be a DER-encoded CMS SignedData
structure with detached content, carrying the pass type certificate and
the WWDR intermediate. This is what ``openssl smime -sign -binary
-outform DER`` produces; here it is built with ``cryptography``.

Signing is never retried: key stores backed by hardware or an OS keychain
may rate-limit or prompt again, so retry policy belongs to the caller.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime

from cryptography import x509
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, padding, rsa
from cryptography.hazmat.primitives.asymmetric.types import PublicKeyTypes
from cryptography.hazmat.primitives.serialization import pkcs7

from passbundle import cms
from passbundle.errors import (
    SigningBackendError,
    SigningError,
    UnsupportedAlgorithmError,
    UntrustedIdentityError,
    VerificationError,
)
from passbundle.identity import SigningIdentity, unique_certificates

logger = logging.getLogger(__name__)

DIGEST_ALGORITHMS: dict[str, type[hashes.HashAlgorithm]] = {
    "sha224": hashes.SHA224,
    "sha256": hashes.SHA256,
    "sha384": hashes.SHA384,
    "sha512": hashes.SHA512,
}

# Older pass signatures use SHA-1; accepted when checking, never when signing
_DIGEST_OIDS: dict[str, type[hashes.HashAlgorithm]] = {
    "1.3.14.3.2.26": hashes.SHA1,
    "2.16.840.1.101.3.4.2.4": hashes.SHA224,
    "2.16.840.1.101.3.4.2.1": hashes.SHA256,
    "2.16.840.1.101.3.4.2.2": hashes.SHA384,
    "2.16.840.1.101.3.4.2.3": hashes.SHA512,
}

_RSA_PSS_OID = "1.2.840.113549.1.1.10"

KEY_TYPES = ("rsa", "ec")

_SIGN_OPTIONS = [pkcs7.PKCS7Options.DetachedSignature, pkcs7.PKCS7Options.Binary]


@dataclass(frozen=True)
class KeyPolicy:
    """Key and digest algorithms accepted for pass signatures."""

    allowed_key_types: tuple[str, ...] = ("rsa",)
    min_rsa_bits: int = 2048
    digest_algorithm: str = "sha256"

    def hash_algorithm(self) -> hashes.HashAlgorithm:
        try:
            return DIGEST_ALGORITHMS[self.digest_algorithm.lower()]()
        except KeyError:
            raise UnsupportedAlgorithmError(
                f"Unsupported signature digest: {self.digest_algorithm}. "
                f"Allowed: {sorted(DIGEST_ALGORITHMS)}"
            ) from None

    def check_public_key(self, public_key: PublicKeyTypes) -> None:
        """Raise UnsupportedAlgorithmError unless the key is acceptable."""
        if isinstance(public_key, rsa.RSAPublicKey):
            if "rsa" not in self.allowed_key_types:
                raise UnsupportedAlgorithmError("RSA keys are not allowed by the key policy")
            if public_key.key_size < self.min_rsa_bits:
                raise UnsupportedAlgorithmError(
                    f"RSA key too short: {public_key.key_size} bits < {self.min_rsa_bits}"
                )
            return

        if isinstance(public_key, ec.EllipticCurvePublicKey):
            if "ec" not in self.allowed_key_types:
                raise UnsupportedAlgorithmError("EC keys are not allowed by the key policy")
            return

        raise UnsupportedAlgorithmError(
            f"Unsupported key type for PKCS#7 pass signatures: {type(public_key).__name__}"
        )


def _public_der(public_key: PublicKeyTypes) -> bytes:
    return public_key.public_bytes(
        serialization.Encoding.DER,
        serialization.PublicFormat.SubjectPublicKeyInfo,
    )


def is_issued_by(child: x509.Certificate, issuer: x509.Certificate) -> bool:
    """True if issuer's key signed child and the names link up."""
    if child.issuer != issuer.subject:
        return False
    try:
        child.verify_directly_issued_by(issuer)
    except (ValueError, TypeError, InvalidSignature):
        return False
    return True


def build_path(
    leaf: x509.Certificate,
    pool: Sequence[x509.Certificate],
) -> list[x509.Certificate]:
    """Order certificates from the leaf upward by issuer signature.

    Repeated certificates in pool are ignored. The path ends at a
    self-issued certificate or where no remaining certificate issued the
    last one.

    Returns:
        The leaf followed by its issuers, nearest first
    """
    path = [leaf]
    remaining = [c for c in unique_certificates(pool) if c != leaf]
    while remaining:
        current = path[-1]
        if current.issuer == current.subject:
            break
        issuer = next((c for c in remaining if is_issued_by(current, c)), None)
        if issuer is None:
            break
        path.append(issuer)
        remaining.remove(issuer)
    return path


def end_entities(certificates: Sequence[x509.Certificate]) -> list[x509.Certificate]:
    """Certificates that issued none of the others."""
    return [
        cert for cert in certificates
        if not any(other != cert and is_issued_by(other, cert) for other in certificates)
    ]


@dataclass(frozen=True)
class Signature:
    """DER-encoded detached PKCS#7 signature."""

    der: bytes

    def to_bytes(self) -> bytes:
        return self.der

    def certificates(self) -> list[x509.Certificate]:
        """Certificates embedded in the signature (signer and chain)."""
        return pkcs7.load_der_pkcs7_certificates(self.der)

    @staticmethod
    def _find_signer(
        info: cms.SignerInfo,
        certificates: list[x509.Certificate],
    ) -> x509.Certificate:
        if info.serial_number is not None:
            candidates = [c for c in certificates if c.serial_number == info.serial_number]
            if len(candidates) > 1:
                candidates = [c for c in candidates if c.issuer.public_bytes() == info.issuer]
            if len(candidates) == 1:
                return candidates[0]
            raise VerificationError("Signer certificate is not embedded in the signature")

        leaves = end_entities(certificates)
        if len(leaves) != 1:
            raise VerificationError(f"Cannot identify the signer among {len(leaves)} end-entity certificates")
        return leaves[0]

    def verify(self, content: bytes) -> x509.Certificate:
        """Check that the signature covers the detached content.

        Args:
            content: Bytes that were signed (the manifest)

        Returns:
            Signer certificate

        Raises:
            VerificationError: If the signature is malformed or does not
                match the content
        """
        try:
            info = cms.read_signer_info(self.der)
            certificates = self.certificates()
        except ValueError as e:
            raise VerificationError(f"Malformed signature: {e}") from e

        signer = self._find_signer(info, certificates)

        hash_type = _DIGEST_OIDS.get(info.digest_oid)
        if hash_type is None:
            raise VerificationError(f"Unsupported digest algorithm: {info.digest_oid}")
        algorithm = hash_type()

        if info.signed_attributes is None:
            signed = content
        else:
            if info.message_digest is None:
                raise VerificationError("Signed attributes carry no message digest")
            hasher = hashes.Hash(algorithm)
            hasher.update(content)
            if hasher.finalize() != info.message_digest:
                raise VerificationError("Message digest does not match the content")
            signed = info.signed_attributes

        public_key = signer.public_key()
        try:
            if isinstance(public_key, rsa.RSAPublicKey):
                if info.signature_oid == _RSA_PSS_OID:
                    scheme = padding.PSS(mgf=padding.MGF1(algorithm), salt_length=padding.PSS.AUTO)
                else:
                    scheme = padding.PKCS1v15()
                public_key.verify(info.signature, signed, scheme, algorithm)
            elif isinstance(public_key, ec.EllipticCurvePublicKey):
                public_key.verify(info.signature, signed, ec.ECDSA(algorithm))
            else:
                raise VerificationError(f"Unsupported signer key type: {type(public_key).__name__}")
        except InvalidSignature as e:
            raise VerificationError("Signature value does not verify with the signer certificate") from e

        return signer

    def __len__(self) -> int:
        return len(self.der)


@dataclass
class Signer:
    """Manifest signer.

    Attributes:
        policy: Accepted key types and signature digest
        trust_roots: Accepted root certificates; empty skips anchoring
        clock: Returns the current time, used for validity checks
    """

    policy: KeyPolicy = field(default_factory=KeyPolicy)
    trust_roots: Sequence[x509.Certificate] = ()
    clock: Callable[[], datetime] | None = None

    def _now(self) -> datetime:
        return self.clock() if self.clock else datetime.now(UTC)

    def validate_identity(self, identity: SigningIdentity) -> list[x509.Certificate]:
        """Check validity windows, chain links, and trust anchoring.

        The chain may be given in any order and may repeat certificates;
        every distinct certificate in it must lie on the issuer path from
        the leaf.

        Returns:
            Certification path, leaf first

        Raises:
            UntrustedIdentityError: If any check fails
            UnsupportedAlgorithmError: If the certificate key is not allowed
        """
        try:
            leaf = identity.certificate
            chain = list(identity.chain)
        except SigningError:
            raise
        except Exception as e:
            raise UntrustedIdentityError(f"Malformed signing identity: {e}") from e

        now = self._now()
        for cert in [leaf, *chain]:
            if now < cert.not_valid_before_utc:
                raise UntrustedIdentityError(
                    f"Certificate not yet valid: {cert.subject.rfc4514_string()} "
                    f"(valid from {cert.not_valid_before_utc.isoformat()})"
                )
            if now > cert.not_valid_after_utc:
                raise UntrustedIdentityError(
                    f"Certificate expired: {cert.subject.rfc4514_string()} "
                    f"(expired {cert.not_valid_after_utc.isoformat()})"
                )

        path = build_path(leaf, chain)
        stray = [c for c in unique_certificates(chain) if c not in path]
        if stray:
            raise UntrustedIdentityError(
                f"Broken certificate chain: {stray[0].subject.rfc4514_string()} "
                f"is not on the issuer path of {leaf.subject.rfc4514_string()}"
            )

        if self.trust_roots:
            top = path[-1]
            anchored = any(
                top == root or is_issued_by(top, root) for root in self.trust_roots
            )
            if not anchored:
                raise UntrustedIdentityError(
                    f"Certificate chain does not lead to a trusted root: "
                    f"{top.issuer.rfc4514_string()}"
                )

        self.policy.check_public_key(leaf.public_key())
        return path

    def sign(self, manifest_bytes: bytes, identity: SigningIdentity) -> Signature:
        """Sign the exact manifest bytes with a detached PKCS#7 signature.

        Args:
            manifest_bytes: Serialized manifest
            identity: Signing identity; its key is borrowed for this call only

        Returns:
            Signature

        Raises:
            UntrustedIdentityError: Expired, broken, or untrusted identity
            UnsupportedAlgorithmError: Key or digest not permitted
            SigningBackendError: Key store or CMS builder failure
        """
        try:
            hash_algorithm = self.policy.hash_algorithm()
            path = self.validate_identity(identity)
            der = self._sign_with_borrowed_key(manifest_bytes, identity, path, hash_algorithm)
        except SigningError as e:
            logger.warning("Signing failed (%s): %s", type(e).__name__, e)
            raise

        logger.debug("Signed %d manifest bytes as %s", len(manifest_bytes), identity.describe())
        return Signature(der)

    def _sign_with_borrowed_key(
        self,
        data: bytes,
        identity: SigningIdentity,
        path: list[x509.Certificate],
        hash_algorithm: hashes.HashAlgorithm,
    ) -> bytes:
        leaf = path[0]
        try:
            with identity.borrow_key() as key:
                if _public_der(key.public_key()) != _public_der(leaf.public_key()):
                    raise UntrustedIdentityError(
                        "Private key does not match the signer certificate"
                    )

                builder = (
                    pkcs7.PKCS7SignatureBuilder()
                    .set_data(data)
                    .add_signer(leaf, key, hash_algorithm)
                )
                for cert in path[1:]:
                    builder = builder.add_certificate(cert)
                return builder.sign(serialization.Encoding.DER, _SIGN_OPTIONS)
        except SigningError:
            raise
        except TimeoutError as e:
            raise SigningBackendError(f"Signing backend timed out: {e}") from e
        except Exception as e:
            raise SigningBackendError(f"Signing backend failed: {type(e).__name__}: {e}") from e
