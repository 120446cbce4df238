"""Tests for building registries from configuration."""

from __future__ import annotations

import base64
import logging
import os
from pathlib import Path
from typing import Any, Dict

import pytest

from cipher_envelope import (
    BUILTIN_CIPHERS,
    AesCtrCipher,
    CipherProvider,
    ConfigError,
    ErrorKind,
    LiteralKey,
    MissingKeySourceError,
    SystemKey,
    load_registry,
    parse_keys,
)
from cipher_envelope.config import available_ciphers

from .conftest import KEY_1, KEY_2


def aes_config(**overrides: Any) -> Dict[str, Any]:
    cipher = {
        "tag": b"AES",
        "default": True,
        "keys": [
            {"tag": 1, "key": KEY_1, "default": False},
            {"tag": b"\x02", "key": KEY_2, "default": True},
        ],
    }
    cipher.update(overrides)
    return {"ciphers": [cipher]}


class TestLoadRegistry:
    def test_builds_aes_ctr_by_default(self) -> None:
        registry = load_registry(aes_config())
        entry = registry.default_entry()
        assert entry.tag == b"AES"
        assert isinstance(entry.provider, AesCtrCipher)
        assert registry.version() == b"AES\x02"
        assert registry.decrypt(registry.encrypt(b"Hello")) == b"Hello"

    def test_str_module_tag(self) -> None:
        registry = load_registry(aes_config(tag="AES"))
        assert registry.version() == b"AES\x02"

    def test_preserves_order(self) -> None:
        config = aes_config()
        config["ciphers"].append(
            {"tag": b"OLD", "keys": [{"tag": 9, "key": KEY_1, "default": True}]}
        )
        registry = load_registry(config)
        assert [e.tag for e in registry] == [b"AES", b"OLD"]
        assert not registry.find_entry(b"OLD...").default

    def test_source_key(self, env_key: str) -> None:
        registry = load_registry(
            aes_config(keys=[{"tag": 1, "key": {"source": env_key}, "default": True}])
        )
        assert registry.decrypt(registry.encrypt(b"Hello")) == b"Hello"

    def test_system_alias(self, env_key: str) -> None:
        keys = parse_keys([{"tag": 1, "key": {"system": env_key}, "default": True}])
        assert keys.default().material == SystemKey(env_key)

    def test_source_key_is_resolved_lazily(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("CIPHER_ENVELOPE_LATER", raising=False)
        registry = load_registry(
            aes_config(keys=[{"tag": 1, "key": {"source": "CIPHER_ENVELOPE_LATER"}, "default": True}])
        )

        with pytest.raises(MissingKeySourceError):
            registry.encrypt(b"Hello")

        monkeypatch.setenv("CIPHER_ENVELOPE_LATER", base64.b64encode(KEY_2).decode())
        assert registry.decrypt(registry.encrypt(b"Hello")) == b"Hello"

    def test_dotenv_file(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        name = "CIPHER_ENVELOPE_DOTENV_KEY"
        encoded = base64.b64encode(KEY_1).decode()
        # Register the variable with monkeypatch so whatever dotenv sets is undone
        monkeypatch.setenv(name, "placeholder")
        monkeypatch.delenv(name)

        env_file = tmp_path / ".env"
        env_file.write_text(f"{name}={encoded}\n")

        registry = load_registry(
            aes_config(keys=[{"tag": 1, "key": {"source": name}, "default": True}]),
            dotenv_path=env_file,
        )

        assert os.environ[name] == encoded
        assert registry.decrypt(registry.encrypt(b"Hello")) == b"Hello"

    def test_dotenv_does_not_override(self, tmp_path: Path, env_key: str) -> None:
        env_file = tmp_path / ".env"
        env_file.write_text(f"{env_key}={base64.b64encode(KEY_2).decode()}\n")

        load_registry(aes_config(), dotenv_path=env_file)
        assert os.environ[env_key] == base64.b64encode(KEY_1).decode()

    def test_custom_cipher(self) -> None:
        class ReverseCipher(CipherProvider):
            def encrypt(self, plaintext: bytes) -> bytes:
                return plaintext[::-1]

            def decrypt(self, ciphertext: bytes) -> bytes:
                return ciphertext[::-1]

            def version(self) -> bytes:
                return b"r"

        registry = load_registry(
            {"ciphers": [{"tag": b"REV", "cipher": "reverse", "default": True}]},
            factories={"reverse": lambda options: ReverseCipher()},
        )

        assert registry.encrypt(b"abc") == b"REVcba"
        assert registry.version() == b"REVr"

        # Factories passed to one call are not visible to the next
        assert list(BUILTIN_CIPHERS) == ["aes_ctr"]
        with pytest.raises(ConfigError):
            load_registry({"ciphers": [{"tag": b"REV", "cipher": "reverse", "default": True}]})

    def test_builtin_ciphers_are_read_only(self) -> None:
        with pytest.raises(TypeError):
            BUILTIN_CIPHERS["reverse"] = lambda options: None  # type: ignore[index]
        assert available_ciphers() == ["aes_ctr"]
        assert available_ciphers({"reverse": lambda options: None}) == ["aes_ctr", "reverse"]


class TestConfigValidation:
    @pytest.mark.parametrize(
        "config",
        [
            {},
            {"ciphers": []},
            {"ciphers": "AES"},
            {"ciphers": [{"default": True, "keys": [{"tag": 1, "key": KEY_1}]}]},
            {"ciphers": [{"tag": b"", "keys": [{"tag": 1, "key": KEY_1}]}]},
            {"ciphers": [{"tag": 5, "keys": [{"tag": 1, "key": KEY_1}]}]},
            {"ciphers": [{"tag": b"AES", "cipher": "des", "keys": [{"tag": 1, "key": KEY_1}]}]},
            {"ciphers": [{"tag": b"AES"}]},
            {"ciphers": [{"tag": b"AES", "keys": []}]},
        ],
    )
    def test_invalid_cipher_config(self, config: Dict[str, Any]) -> None:
        with pytest.raises(ConfigError) as exc:
            load_registry(config)
        assert exc.value.kind is ErrorKind.CONFIG

    @pytest.mark.parametrize(
        "key",
        [
            {"tag": 256, "key": KEY_1},
            {"tag": -1, "key": KEY_1},
            {"tag": True, "key": KEY_1},
            {"tag": b"\x01\x02", "key": KEY_1},
            {"tag": "1", "key": KEY_1},
            {"tag": 1, "key": b"short"},
            {"tag": 1, "key": "not bytes"},
            {"tag": 1, "key": {"source": ""}},
            {"tag": 1},
            {"key": KEY_1},
        ],
    )
    def test_invalid_key_config(self, key: Dict[str, Any]) -> None:
        with pytest.raises(ConfigError):
            parse_keys([key])

    def test_literal_keys_are_parsed(self) -> None:
        keys = parse_keys([{"tag": 3, "key": bytearray(KEY_1), "default": True}])
        assert keys.default().tag == b"\x03"
        assert keys.default().material == LiteralKey(KEY_1)


class TestAmbiguityWarnings:
    def test_prefix_collision_is_logged_not_rejected(self, caplog: pytest.LogCaptureFixture) -> None:
        keys = [{"tag": 1, "key": KEY_1, "default": True}]
        with caplog.at_level(logging.WARNING, logger="cipher_envelope.config"):
            registry = load_registry(
                {
                    "ciphers": [
                        {"tag": b"A", "default": True, "keys": keys},
                        {"tag": b"AB", "keys": keys},
                    ]
                }
            )
        assert len(registry) == 2
        assert any("prefix each other" in r.message for r in caplog.records)

    def test_tags_are_logged_as_hex(self, caplog: pytest.LogCaptureFixture) -> None:
        keys = [{"tag": 1, "key": KEY_1, "default": True}]
        with caplog.at_level(logging.INFO, logger="cipher_envelope.config"):
            load_registry(
                {
                    "ciphers": [
                        {"tag": b"A", "default": True, "keys": keys},
                        {"tag": b"AB", "keys": keys},
                    ]
                }
            )
        messages = [r.getMessage() for r in caplog.records]
        assert "Module tags 41 and 4142 prefix each other; 41 is matched first" in messages
        assert any(m.endswith("default tag 41") for m in messages)
        assert not any("b'" in m for m in messages)

    def test_multiple_defaults_are_logged(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.WARNING, logger="cipher_envelope.config"):
            keys = parse_keys(
                [
                    {"tag": 1, "key": KEY_1, "default": True},
                    {"tag": 2, "key": KEY_2, "default": True},
                ]
            )
        assert keys.default().tag == b"\x01"
        assert any("flagged default" in r.message for r in caplog.records)

    def test_duplicate_tags_are_logged(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.WARNING, logger="cipher_envelope.config"):
            parse_keys(
                [
                    {"tag": 1, "key": KEY_1, "default": True},
                    {"tag": 1, "key": KEY_2},
                ]
            )
        assert any("Duplicate key tags" in r.message for r in caplog.records)
