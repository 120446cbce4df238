"""
Build registries from configuration.

Loading the configuration (files, settings frameworks) is the caller's job.
This module validates an already-loaded mapping and turns it into an
immutable CipherRegistry, once, at process start:

    registry = load_registry({
        "ciphers": [
            {
                "tag": b"AES",
                "default": True,
                "cipher": "aes_ctr",
                "keys": [
                    {"tag": 1, "key": {"source": "CIPHER_KEY_PRIMARY"}, "default": True},
                    {"tag": 2, "key": base64.b64decode("..."), "default": False},
                ],
            },
        ],
    }, dotenv_path=".env")

Ambiguous setups (several defaults, duplicate tags, module tags that prefix
each other) are allowed and logged; the first matching entry always wins.
"""

from __future__ import annotations

import logging
from pathlib import Path
from types import MappingProxyType
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Union

from dotenv import load_dotenv

from .ciphers import AesCtrCipher, CipherProvider
from .crypto import VALID_KEY_SIZES
from .errors import ConfigError
from .keys import (
    KeyEntry,
    KeyMaterial,
    KeyRegistry,
    LiteralKey,
    SystemKey,
    parse_key_tag,
)
from .registry import CipherEntry, CipherRegistry

logger = logging.getLogger(__name__)

DEFAULT_CIPHER = "aes_ctr"

ProviderFactory = Callable[[Mapping[str, Any]], CipherProvider]


# =============================================================================
# Key Parsing
# =============================================================================


def parse_key_material(value: Any) -> KeyMaterial:
    """
    Parse the ``key`` option of a key entry.

    Literal bytes are checked for size now. Environment-sourced keys are
    only checked when used, since the variable may change later.
    """
    if isinstance(value, Mapping):
        env_var = value.get("source", value.get("system"))
        if not isinstance(env_var, str) or not env_var:
            raise ConfigError("Key source must name an environment variable")
        return SystemKey(env_var)

    if isinstance(value, (bytes, bytearray)):
        if len(value) not in VALID_KEY_SIZES:
            raise ConfigError(
                f"Invalid key size: expected one of {VALID_KEY_SIZES} bytes, got {len(value)}"
            )
        return LiteralKey(bytes(value))

    raise ConfigError(
        f"Key must be bytes or {{'source': ENV_VAR}}, got {type(value).__name__}"
    )


def parse_keys(keys: Optional[Sequence[Mapping[str, Any]]]) -> KeyRegistry:
    """
    Build a KeyRegistry from a list of key entry mappings.

    Raises:
        ConfigError: If the list or any entry is malformed
    """
    if not isinstance(keys, (list, tuple)) or not keys:
        raise ConfigError("'keys' must be a non-empty list")

    entries: List[KeyEntry] = []
    for index, item in enumerate(keys):
        if not isinstance(item, Mapping):
            raise ConfigError(f"Key entry {index} must be a mapping")
        if "tag" not in item or "key" not in item:
            raise ConfigError(f"Key entry {index} requires 'tag' and 'key'")

        entries.append(
            KeyEntry(
                tag=parse_key_tag(item["tag"]),
                material=parse_key_material(item["key"]),
                default=bool(item.get("default", False)),
            )
        )

    _warn_ambiguous("key", [e.tag for e in entries], [e.default for e in entries])
    return KeyRegistry(entries)


# =============================================================================
# Cipher Factories
# =============================================================================


def _build_aes_ctr(options: Mapping[str, Any]) -> CipherProvider:
    return AesCtrCipher(parse_keys(options.get("keys")))


BUILTIN_CIPHERS: Mapping[str, ProviderFactory] = MappingProxyType({
    DEFAULT_CIPHER: _build_aes_ctr,
})


def available_ciphers(
    factories: Optional[Mapping[str, ProviderFactory]] = None,
) -> List[str]:
    return sorted(_merge_factories(factories))


def _merge_factories(
    factories: Optional[Mapping[str, ProviderFactory]],
) -> Dict[str, ProviderFactory]:
    merged = dict(BUILTIN_CIPHERS)
    merged.update(factories or {})
    return merged


# =============================================================================
# Registry
# =============================================================================


def parse_module_tag(value: Any) -> bytes:
    if isinstance(value, str):
        value = value.encode("utf-8")
    if not isinstance(value, (bytes, bytearray)) or not value:
        raise ConfigError(f"Module tag must be non-empty bytes or str, got {value!r}")
    return bytes(value)


def load_registry(
    config: Mapping[str, Any],
    dotenv_path: Optional[Union[str, Path]] = None,
    factories: Optional[Mapping[str, ProviderFactory]] = None,
) -> CipherRegistry:
    """
    Build the cipher registry from configuration.

    Args:
        config: Mapping with a ``ciphers`` list
        dotenv_path: Optional .env file loaded into the environment first
            (existing variables are not overridden)
        factories: Extra cipher factories by name, called with the cipher's
            config mapping. They take precedence over the built-in ones.

    Returns:
        CipherRegistry with entries in configuration order

    Raises:
        ConfigError: If the configuration is malformed
    """
    if dotenv_path is not None:
        load_dotenv(dotenv_path, override=False)

    available = _merge_factories(factories)

    ciphers = config.get("ciphers") if isinstance(config, Mapping) else None
    if not isinstance(ciphers, (list, tuple)) or not ciphers:
        raise ConfigError("'ciphers' must be a non-empty list")

    entries: List[CipherEntry] = []
    for index, item in enumerate(ciphers):
        if not isinstance(item, Mapping):
            raise ConfigError(f"Cipher entry {index} must be a mapping")
        if "tag" not in item:
            raise ConfigError(f"Cipher entry {index} requires 'tag'")

        name = item.get("cipher", DEFAULT_CIPHER)
        factory = available.get(name)
        if factory is None:
            raise ConfigError(
                f"Unknown cipher {name!r}, expected one of {sorted(available)}"
            )

        entries.append(
            CipherEntry(
                tag=parse_module_tag(item["tag"]),
                provider=factory(item),
                default=bool(item.get("default", False)),
            )
        )

    tags = [e.tag for e in entries]
    _warn_ambiguous("cipher", tags, [e.default for e in entries])
    _warn_prefix_collisions(tags)

    default_tag = next((e.tag for e in entries if e.default), None)
    logger.info(
        "Cipher registry loaded with %d cipher(s), default tag %s",
        len(entries),
        default_tag.hex() if default_tag is not None else None,
    )
    return CipherRegistry(entries)


def _warn_ambiguous(kind: str, tags: List[bytes], defaults: List[bool]) -> None:
    if defaults.count(True) > 1:
        logger.warning("Several %s entries are flagged default; the first one is used", kind)
    if not any(defaults):
        logger.warning("No %s entry is flagged default; encryption will fail", kind)
    if len(set(tags)) != len(tags):
        logger.warning("Duplicate %s tags configured; the first entry wins", kind)


def _warn_prefix_collisions(tags: List[bytes]) -> None:
    for i, earlier in enumerate(tags):
        for later in tags[i + 1:]:
            if later != earlier and (later.startswith(earlier) or earlier.startswith(later)):
                logger.warning(
                    "Module tags %s and %s prefix each other; %s is matched first",
                    earlier.hex(),
                    later.hex(),
                    earlier.hex(),
                )
