"""User preferences and their on-disk representation."""

from __future__ import annotations

import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping

from cryptography.fernet import Fernet, InvalidToken

from ..utils.file_io import read_json, write_json

__all__ = [
    "Preferences",
    "PreferencesStore",
    "SecretVault",
    "THEME_CHOICES",
    "redact_secret",
]

LOGGER = logging.getLogger(__name__)
THEME_CHOICES: tuple[str, ...] = ("system", "light", "dark", "highcontrast")
UNSET_LANGUAGE = "none"
_API_KEY_CIPHERTEXT = "claudeAPIKeyCiphertext"
_TRUE_VALUES = {"1", "true", "yes", "on"}

# Field name -> key used in preferences.json. The file is shared with older
# clients, so the camelCase names are part of its contract.
_WIRE_KEYS: Mapping[str, str] = {
    "src_lang": "srcLang",
    "tgt_lang": "tgtLang",
    "app_lang": "appLang",
    "theme": "theme",
    "catalog": "catalog",
    "srx": "srx",
    "claude_api_key": "claudeAPIKey",
    "enable_ai": "enableAI",
    "check_updates_on_start": "checkUpdatesOnStart",
    "debug_logging": "debugLogging",
}
_ENV_OVERRIDES: Mapping[str, str] = {
    "BUNGHOLE_SRC_LANG": "src_lang",
    "BUNGHOLE_TGT_LANG": "tgt_lang",
    "BUNGHOLE_APP_LANG": "app_lang",
    "BUNGHOLE_THEME": "theme",
    "BUNGHOLE_CLAUDE_API_KEY": "claude_api_key",
}
_BOOL_ENV_OVERRIDES: Mapping[str, str] = {
    "BUNGHOLE_ENABLE_AI": "enable_ai",
    "BUNGHOLE_DEBUG_LOGGING": "debug_logging",
}


@dataclass(slots=True, frozen=True)
class Preferences:
    """Process-wide configuration, replaced wholesale and never edited in place."""

    src_lang: str = UNSET_LANGUAGE
    tgt_lang: str = UNSET_LANGUAGE
    app_lang: str = "en"
    theme: str = "system"
    catalog: str = ""
    srx: str = ""
    claude_api_key: str = ""
    enable_ai: bool = False
    check_updates_on_start: bool = True
    debug_logging: bool = False

    @property
    def has_api_key(self) -> bool:
        return bool(self.claude_api_key.strip())

    def with_default_languages(self, src_lang: str, tgt_lang: str) -> "Preferences":
        """Fill unset language defaults from a freshly created alignment."""

        updates: Dict[str, str] = {}
        if self.src_lang == UNSET_LANGUAGE and src_lang:
            updates["src_lang"] = src_lang
        if self.tgt_lang == UNSET_LANGUAGE and tgt_lang:
            updates["tgt_lang"] = tgt_lang
        return replace(self, **updates) if updates else self


class SecretProvider(ABC):
    """Interface for encrypting and decrypting sensitive strings."""

    name: str = "unknown"

    @abstractmethod
    def encrypt(self, secret: str) -> str:
        """Return an encoded representation of ``secret`` suitable for storage."""

    @abstractmethod
    def decrypt(self, token: str) -> str:
        """Return the plaintext representation of ``token``."""


class FernetSecretProvider(SecretProvider):
    """Symmetric Fernet key kept in a file next to the preferences."""

    name = "fernet"

    def __init__(self, key_path: Path) -> None:
        self._key_path = key_path
        self._fernet: Fernet | None = None

    def encrypt(self, secret: str) -> str:
        return self._get_fernet().encrypt(secret.encode("utf-8")).decode("ascii")

    def decrypt(self, token: str) -> str:
        return self._get_fernet().decrypt(token.encode("ascii")).decode("utf-8")

    def _get_fernet(self) -> Fernet:
        if self._fernet is None:
            self._fernet = Fernet(self._load_or_create_key())
        return self._fernet

    def _load_or_create_key(self) -> bytes:
        path = self._key_path
        path.parent.mkdir(parents=True, exist_ok=True)
        if path.exists():
            return path.read_bytes().strip()
        key = Fernet.generate_key()
        tmp_path = path.with_suffix(".tmp")
        tmp_path.write_bytes(key)
        if os.name != "nt":  # pragma: no cover - depends on OS
            os.chmod(tmp_path, 0o600)
        tmp_path.replace(path)
        return key


class SecretVault:
    """Prefixes ciphertext with the provider name so keys survive backend changes."""

    def __init__(self, *, key_path: Path, provider: SecretProvider | None = None) -> None:
        self._provider = provider or FernetSecretProvider(key_path)

    @property
    def strategy(self) -> str:
        return self._provider.name

    def encrypt(self, secret: str) -> str:
        if not secret:
            return ""
        return f"{self._provider.name}:{self._provider.encrypt(secret)}"

    def decrypt(self, token: str | None) -> str:
        if not token:
            return ""
        prefix, _, payload = token.partition(":")
        if not payload or prefix != self._provider.name:
            raise ValueError(f"Unsupported secret token prefix {prefix!r}")
        try:
            return self._provider.decrypt(payload)
        except InvalidToken as exc:
            raise ValueError("Invalid Fernet token") from exc


class PreferencesStore:
    """Loads and saves :class:`Preferences` as ``preferences.json``.

    CLI and environment overrides only affect the record returned by
    :meth:`load`. :meth:`save` writes the persisted values back for every
    overridden field the caller left untouched.
    """

    def __init__(
        self,
        path: Path,
        *,
        install_dir: Path | None = None,
        vault: SecretVault | None = None,
    ) -> None:
        self._path = path
        self._install_dir = install_dir or Path.cwd()
        self._vault = vault or SecretVault(key_path=path.with_suffix(".key"))
        self._persisted: Preferences | None = None
        self._effective: Preferences | None = None

    @property
    def path(self) -> Path:
        return self._path

    @property
    def vault(self) -> SecretVault:
        return self._vault

    def defaults(self) -> Preferences:
        return Preferences(
            catalog=str(self._install_dir / "catalog" / "catalog.xml"),
            srx=str(self._install_dir / "srx" / "default.srx"),
        )

    def load(self, *, overrides: Mapping[str, Any] | None = None) -> Preferences:
        """Read preferences, creating the file with defaults on first run."""

        self._persisted = self._effective = None
        payload = read_json(self._path)
        if payload is None and not self._path.exists():
            preferences = self.defaults()
            self.save(preferences)
        elif not isinstance(payload, Mapping):
            LOGGER.warning("Ignoring unreadable preferences at %s", self._path)
            preferences = self.defaults()
        else:
            preferences, migrated = self._from_payload(payload)
            if migrated:
                self.save(preferences)

        persisted = preferences
        if overrides:
            preferences = apply_overrides(preferences, overrides, source="CLI")
        preferences = apply_overrides(preferences, _env_overrides(), source="environment")
        self._persisted, self._effective = persisted, preferences
        return preferences

    def save(self, preferences: Preferences) -> Path:
        persisted = self._without_overrides(preferences)
        write_json(self._path, self._to_payload(persisted))
        if self._effective is not None:
            self._persisted, self._effective = persisted, preferences
        LOGGER.debug("Preferences saved to %s", self._path)
        return self._path

    def _without_overrides(self, preferences: Preferences) -> Preferences:
        persisted, effective = self._persisted, self._effective
        if persisted is None or effective is None:
            return preferences
        restored: Dict[str, Any] = {}
        for field in fields(Preferences):
            name = field.name
            loaded = getattr(effective, name)
            if getattr(persisted, name) != loaded and getattr(preferences, name) == loaded:
                restored[name] = getattr(persisted, name)
        return replace(preferences, **restored) if restored else preferences

    def _from_payload(self, payload: Mapping[str, Any]) -> tuple[Preferences, bool]:
        data: Dict[str, Any] = {}
        for name, key in _WIRE_KEYS.items():
            if key in payload and payload[key] is not None:
                data[name] = payload[key]

        migrated = False
        ciphertext = payload.get(_API_KEY_CIPHERTEXT)
        if ciphertext:
            try:
                data["claude_api_key"] = self._vault.decrypt(str(ciphertext))
            except ValueError as exc:
                LOGGER.warning("Unable to decrypt Claude API key: %s", exc)
                data["claude_api_key"] = ""
        elif data.get("claude_api_key"):
            LOGGER.info("Migrating plaintext Claude API key to encrypted storage.")
            migrated = True

        if data.get("theme") not in THEME_CHOICES:
            if "theme" in data:
                LOGGER.warning("Unknown theme %r; using 'system'.", data["theme"])
            data["theme"] = "system"
        if not data.get("app_lang"):
            data["app_lang"] = "en"

        defaults = self.defaults()
        data.setdefault("catalog", defaults.catalog)
        data.setdefault("srx", defaults.srx)
        try:
            return Preferences(**data), migrated
        except TypeError as exc:  # pragma: no cover - filtered above
            LOGGER.warning("Preferences payload contained unexpected data: %s", exc)
            return defaults, False

    def _to_payload(self, preferences: Preferences) -> Dict[str, Any]:
        payload: Dict[str, Any] = {}
        for field in fields(Preferences):
            if field.name == "claude_api_key":
                continue
            payload[_WIRE_KEYS[field.name]] = getattr(preferences, field.name)
        if preferences.claude_api_key:
            payload[_API_KEY_CIPHERTEXT] = self._vault.encrypt(preferences.claude_api_key)
        return payload


def apply_overrides(
    preferences: Preferences,
    overrides: Mapping[str, Any],
    *,
    source: str = "runtime",
) -> Preferences:
    allowed = {field.name for field in fields(Preferences)}
    filtered = {key: value for key, value in overrides.items() if key in allowed and value is not None}
    if not filtered:
        return preferences
    LOGGER.debug("Applying %s preference overrides: %s", source, sorted(filtered))
    return replace(preferences, **filtered)


def _env_overrides() -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    for env_name, field_name in _ENV_OVERRIDES.items():
        value = os.environ.get(env_name)
        if value is not None:
            overrides[field_name] = value
    for env_name, field_name in _BOOL_ENV_OVERRIDES.items():
        value = os.environ.get(env_name)
        if value is not None:
            overrides[field_name] = value.strip().lower() in _TRUE_VALUES
    return overrides


def redact_secret(value: str) -> str:
    stripped = (value or "").strip()
    if not stripped:
        return ""
    if len(stripped) <= 4:
        return "*" * len(stripped)
    return f"{stripped[:2]}{'*' * (len(stripped) - 4)}{stripped[-2:]}"
