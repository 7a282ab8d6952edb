"""Bundle verification for tamper detection.

Checks a produced .pkpass against its own manifest: every listed asset is
present with a matching digest, no unlisted assets were added, and the
signature entry is a detached PKCS#7 signature whose signer key signed
exactly the bundled manifest.json. With trust roots configured, the
signer's certificate path must also end at one of them.

Certificate validity windows are not checked; a pass stays verifiable
after its signing certificate expires.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from cryptography import x509

from passbundle.digest import digest
from passbundle.errors import PassbundleError, VerificationError
from passbundle.layout import MANIFEST_NAME, SIGNATURE_NAME
from passbundle.manifest import Manifest
from passbundle.packager import Bundle
from passbundle.security import SecurityLimits
from passbundle.signing import Signature, build_path, is_issued_by


@dataclass
class VerificationResult:
    """Result of bundle verification."""

    valid: bool
    manifest_valid: bool
    signature_valid: bool | None = None
    signer_subject: str | None = None
    files_checked: int = 0
    files_valid: int = 0
    files_tampered: list[dict[str, Any]] = field(default_factory=list)
    files_missing: list[str] = field(default_factory=list)
    files_added: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    timestamp: str = field(default_factory=lambda: datetime.now(UTC).isoformat())

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "valid": self.valid,
            "manifest_valid": self.manifest_valid,
            "signature_valid": self.signature_valid,
            "signer_subject": self.signer_subject,
            "files_checked": self.files_checked,
            "files_valid": self.files_valid,
            "files_tampered": self.files_tampered,
            "files_missing": self.files_missing,
            "files_added": self.files_added,
            "errors": self.errors,
            "timestamp": self.timestamp,
        }

    def write_json(self, path: Path) -> None:
        """Write to JSON file."""
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(self.to_dict(), f, indent=2, sort_keys=True)

    def write_markdown(self, path: Path) -> None:
        """Write to Markdown file."""
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            f.write(self._generate_markdown())

    def _generate_markdown(self) -> str:
        """Generate markdown report."""
        lines = [
            "# Pass Bundle Verification Report",
            "",
            f"**Status:** {'✅ VALID' if self.valid else '❌ INVALID'}",
            f"**Timestamp:** {self.timestamp}",
            "",
            "## Summary",
            "",
            f"- **Manifest Valid:** {'✅ Yes' if self.manifest_valid else '❌ No'}",
        ]

        if self.signature_valid is not None:
            lines.append(f"- **Signature Valid:** {'✅ Yes' if self.signature_valid else '❌ No'}")
        if self.signer_subject:
            lines.append(f"- **Signer:** {self.signer_subject}")

        lines.extend([
            f"- **Files Checked:** {self.files_checked}",
            f"- **Files Valid:** {self.files_valid}",
            f"- **Files Tampered:** {len(self.files_tampered)}",
            f"- **Files Missing:** {len(self.files_missing)}",
            f"- **Files Added:** {len(self.files_added)}",
            "",
        ])

        if self.files_tampered:
            lines.extend(["## Tampered Files", ""])
            for item in self.files_tampered:
                lines.append(f"- **{item['path']}**")
                lines.append(f"  - Expected: `{item['expected_hash']}`")
                lines.append(f"  - Actual: `{item['actual_hash']}`")
            lines.append("")

        if self.files_missing:
            lines.extend(["## Missing Files", ""])
            for path in self.files_missing:
                lines.append(f"- `{path}`")
            lines.append("")

        if self.files_added:
            lines.extend(["## Added Files (Not in Manifest)", ""])
            for path in self.files_added:
                lines.append(f"- `{path}`")
            lines.append("")

        if self.errors:
            lines.extend(["## Errors", ""])
            for error in self.errors:
                lines.append(f"- {error}")
            lines.append("")

        return "\n".join(lines)


class BundleVerifier:
    """Verifier for .pkpass bundles."""

    def __init__(
        self,
        trust_roots: list[x509.Certificate] | None = None,
        limits: SecurityLimits | None = None,
    ) -> None:
        self.trust_roots = trust_roots or []
        self.limits = limits or SecurityLimits()

    def verify(self, bundle: Bundle | Path) -> VerificationResult:
        """Verify a bundle.

        Args:
            bundle: Bundle, or path to a .pkpass file

        Returns:
            VerificationResult
        """
        result = VerificationResult(valid=False, manifest_valid=False)

        try:
            if not isinstance(bundle, Bundle):
                bundle = Bundle.read(Path(bundle))
            unpacked = bundle.unpack(self.limits)
        except FileNotFoundError as e:
            result.errors.append(f"Bundle not found: {e.filename}")
            return result
        except PassbundleError as e:
            result.errors.append(f"Cannot open bundle: {e}")
            return result

        if unpacked.manifest_bytes is None:
            result.errors.append(f"Missing {MANIFEST_NAME}")
            return result

        try:
            manifest = Manifest.from_bytes(unpacked.manifest_bytes)
            result.manifest_valid = True
        except PassbundleError as e:
            result.errors.append(f"Invalid manifest: {e}")
            return result

        self._check_signature(unpacked.signature_bytes, unpacked.manifest_bytes, result)

        listed = set()
        for path, expected in manifest:
            result.files_checked += 1
            listed.add(path)

            asset = unpacked.assets.get(path)
            if asset is None:
                result.files_missing.append(path)
                continue

            actual = digest(asset)
            if actual == expected:
                result.files_valid += 1
            else:
                result.files_tampered.append({
                    "path": path,
                    "expected_hash": expected.hex,
                    "actual_hash": actual.hex,
                })

        result.files_added = [p for p in unpacked.assets.paths() if p not in listed]

        result.valid = (
            result.manifest_valid
            and result.signature_valid is True
            and result.files_valid == result.files_checked
            and not result.files_missing
            and not result.files_tampered
            and not result.files_added
        )
        return result

    def _check_signature(
        self,
        signature_bytes: bytes | None,
        manifest_bytes: bytes,
        result: VerificationResult,
    ) -> None:
        if signature_bytes is None:
            result.signature_valid = False
            result.errors.append(f"Missing {SIGNATURE_NAME}")
            return

        signature = Signature(signature_bytes)
        try:
            certificates = signature.certificates()
        except ValueError as e:
            result.signature_valid = False
            result.errors.append(f"Signature is not a PKCS#7 structure: {e}")
            return

        if not certificates:
            result.signature_valid = False
            result.errors.append("Signature carries no certificates")
            return

        if manifest_bytes and manifest_bytes in signature_bytes:
            result.signature_valid = False
            result.errors.append("Signature embeds the manifest; expected a detached signature")
            return

        try:
            signer = signature.verify(manifest_bytes)
        except VerificationError as e:
            result.signature_valid = False
            result.errors.append(f"Signature does not match {MANIFEST_NAME}: {e}")
            return

        result.signer_subject = signer.subject.rfc4514_string()

        if self.trust_roots:
            top = build_path(signer, certificates)[-1]
            if not any(top == root or is_issued_by(top, root) for root in self.trust_roots):
                result.signature_valid = False
                result.errors.append("Signature certificates do not lead to a trusted root")
                return

        result.signature_valid = True

    def verify_and_report(
        self,
        bundle: Bundle | Path,
        output_dir: Path,
    ) -> tuple[VerificationResult, dict[str, Path]]:
        """Verify and write reports.

        Returns:
            Tuple of (result, report_paths)
        """
        result = self.verify(bundle)

        output_dir.mkdir(parents=True, exist_ok=True)
        paths = {}

        json_path = output_dir / "verification_report.json"
        result.write_json(json_path)
        paths["json"] = json_path

        md_path = output_dir / "verification_report.md"
        result.write_markdown(md_path)
        paths["markdown"] = md_path

        return result, paths
