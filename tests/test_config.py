"""Tests for configuration loading."""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from conftest import PKI
from passbundle.config import PassbundleConfig
from passbundle.errors import ConfigError
from passbundle.signing import KeyPolicy


class TestPassbundleConfig:
    """Test the PassbundleConfig class."""

    def test_defaults(self):
        config = PassbundleConfig()
        assert config.compresslevel == 9
        assert config.signature_digest == "sha256"
        assert config.allowed_key_types == ("rsa",)
        assert config.key_policy() == KeyPolicy()

    @pytest.mark.parametrize("kwargs", [
        {"compresslevel": 10},
        {"digest_workers": 0},
        {"signature_digest": "md5"},
        {"allowed_key_types": ("dsa",)},
        {"allowed_key_types": ()},
        {"min_rsa_bits": 512},
        {"max_assets": 0},
    ])
    def test_validation(self, kwargs):
        with pytest.raises(ConfigError):
            PassbundleConfig(**kwargs)

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("PASSBUNDLE_COMPRESSLEVEL", "3")
        monkeypatch.setenv("PASSBUNDLE_DIGEST_WORKERS", "4")
        monkeypatch.setenv("PASSBUNDLE_SIGNATURE_DIGEST", "SHA384")
        monkeypatch.setenv("PASSBUNDLE_KEY_TYPES", "rsa, ec")
        monkeypatch.setenv("PASSBUNDLE_TRUST_ROOTS", os.pathsep.join(["/a.pem", "/b.pem"]))

        config = PassbundleConfig.from_env()

        assert config.compresslevel == 3
        assert config.digest_workers == 4
        assert config.signature_digest == "sha384"
        assert config.allowed_key_types == ("rsa", "ec")
        assert config.trust_roots == (Path("/a.pem"), Path("/b.pem"))

    def test_from_env_bad_integer(self, monkeypatch):
        monkeypatch.setenv("PASSBUNDLE_COMPRESSLEVEL", "high")
        with pytest.raises(ConfigError):
            PassbundleConfig.from_env()

    def test_from_yaml(self, tmp_path: Path):
        path = tmp_path / "passbundle.yaml"
        path.write_text(
            "compresslevel: 6\n"
            "allowed_key_types: [rsa, ec]\n"
            "trust_roots: certs/root.pem\n"
            "team: ABCDE12345\n"
        )

        config = PassbundleConfig.from_yaml(path)

        assert config.compresslevel == 6
        assert config.allowed_key_types == ("rsa", "ec")
        assert config.trust_roots == (tmp_path / "certs" / "root.pem",)
        assert config.extra == {"team": "ABCDE12345"}

    def test_from_yaml_invalid(self, tmp_path: Path):
        path = tmp_path / "bad.yaml"
        path.write_text("compresslevel: [unclosed\n")
        with pytest.raises(ConfigError):
            PassbundleConfig.from_yaml(path)

    def test_from_yaml_not_mapping(self, tmp_path: Path):
        path = tmp_path / "list.yaml"
        path.write_text("- 1\n- 2\n")
        with pytest.raises(ConfigError):
            PassbundleConfig.from_yaml(path)

    def test_from_dict_wrong_type(self):
        with pytest.raises(ConfigError):
            PassbundleConfig.from_dict({"compresslevel": "max"})

    def test_to_dict_roundtrip(self):
        config = PassbundleConfig(compresslevel=4, allowed_key_types=("ec",))
        assert PassbundleConfig.from_dict(config.to_dict()).to_dict() == config.to_dict()

    def test_signer_loads_trust_roots(self, pem_files: dict[str, Path], pki: PKI):
        config = PassbundleConfig(trust_roots=(pem_files["root"],))
        signer = config.signer()
        assert list(signer.trust_roots) == [pki.root]

    def test_limits(self):
        limits = PassbundleConfig(max_file_size=10, max_assets=2).limits()
        assert limits.max_file_size == 10
        assert limits.max_assets == 2
