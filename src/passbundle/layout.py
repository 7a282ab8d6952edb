"""Fixed names and archive constants of the .pkpass layout."""

from __future__ import annotations

MANIFEST_NAME = "manifest.json"
SIGNATURE_NAME = "signature"
RESERVED_NAMES = frozenset({MANIFEST_NAME, SIGNATURE_NAME})

PASS_DEFINITION_NAME = "pass.json"
PERSONALIZATION_NAME = "personalization.json"

BUNDLE_SUFFIX = ".pkpass"

# Earliest timestamp a ZIP entry can carry; used for every entry
ZIP_EPOCH = (1980, 1, 1, 0, 0, 0)
ZIP_FILE_MODE = 0o644
