"""Tests for preference persistence."""

from __future__ import annotations

import json
from dataclasses import replace
from pathlib import Path

import pytest

from bunghole.services.preferences import Preferences, PreferencesStore, SecretVault, redact_secret


def _store(tmp_path: Path) -> PreferencesStore:
    return PreferencesStore(tmp_path / "preferences.json", install_dir=Path("/opt/bunghole"))


def test_first_load_writes_defaults(tmp_path: Path) -> None:
    store = _store(tmp_path)

    preferences = store.load()

    assert preferences.theme == "system"
    assert preferences.src_lang == "none"
    assert preferences.catalog == str(Path("/opt/bunghole") / "catalog" / "catalog.xml")
    assert preferences.srx == str(Path("/opt/bunghole") / "srx" / "default.srx")
    assert store.path.exists()


def test_saved_file_uses_camel_case_keys_and_encrypts_api_key(tmp_path: Path) -> None:
    store = _store(tmp_path)
    preferences = replace(store.defaults(), src_lang="en", claude_api_key="sk-ant-secret", enable_ai=True)

    store.save(preferences)
    payload = json.loads(store.path.read_text(encoding="utf-8"))

    assert payload["srcLang"] == "en"
    assert payload["enableAI"] is True
    assert "claudeAPIKey" not in payload
    assert payload["claudeAPIKeyCiphertext"].startswith("fernet:")
    assert "sk-ant-secret" not in store.path.read_text(encoding="utf-8")
    assert store.load() == preferences


def test_plaintext_key_is_migrated(tmp_path: Path) -> None:
    store = _store(tmp_path)
    store.path.write_text(json.dumps({"theme": "dark", "claudeAPIKey": "sk-ant-legacy"}), encoding="utf-8")

    preferences = store.load()
    payload = json.loads(store.path.read_text(encoding="utf-8"))

    assert preferences.claude_api_key == "sk-ant-legacy"
    assert preferences.theme == "dark"
    assert "claudeAPIKey" not in payload
    assert payload["claudeAPIKeyCiphertext"]


def test_undecryptable_key_is_dropped(tmp_path: Path) -> None:
    store = _store(tmp_path)
    store.path.write_text(json.dumps({"claudeAPIKeyCiphertext": "fernet:garbage"}), encoding="utf-8")

    assert store.load().claude_api_key == ""


def test_unknown_theme_falls_back_to_system(tmp_path: Path) -> None:
    store = _store(tmp_path)
    store.path.write_text(json.dumps({"theme": "neon"}), encoding="utf-8")

    assert store.load().theme == "system"


def test_unreadable_file_yields_defaults(tmp_path: Path) -> None:
    store = _store(tmp_path)
    store.path.write_text("[1, 2", encoding="utf-8")

    assert store.load() == store.defaults()


def test_environment_and_cli_overrides(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    store = _store(tmp_path)
    monkeypatch.setenv("BUNGHOLE_THEME", "dark")
    monkeypatch.setenv("BUNGHOLE_ENABLE_AI", "yes")

    preferences = store.load(overrides={"src_lang": "nb", "theme": "light"})

    assert preferences.src_lang == "nb"
    assert preferences.theme == "dark"
    assert preferences.enable_ai is True
    # Overrides are never written back.
    assert json.loads(store.path.read_text(encoding="utf-8"))["theme"] == "system"


def test_saving_loaded_preferences_keeps_overrides_out_of_the_file(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    store = _store(tmp_path)
    store.save(replace(store.defaults(), theme="light"))
    monkeypatch.setenv("BUNGHOLE_CLAUDE_API_KEY", "sk-from-env")
    monkeypatch.setenv("BUNGHOLE_THEME", "dark")

    loaded = store.load(overrides={"app_lang": "nb"})
    store.save(loaded.with_default_languages("en", "nb"))
    payload = json.loads(store.path.read_text(encoding="utf-8"))

    assert (loaded.theme, loaded.claude_api_key, loaded.app_lang) == ("dark", "sk-from-env", "nb")
    assert payload["srcLang"] == "en"
    assert payload["tgtLang"] == "nb"
    assert payload["theme"] == "light"
    assert payload["appLang"] == "en"
    assert "claudeAPIKeyCiphertext" not in payload


def test_explicit_change_to_overridden_field_is_saved(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    store = _store(tmp_path)
    store.load()
    monkeypatch.setenv("BUNGHOLE_THEME", "dark")

    loaded = store.load()
    store.save(replace(loaded, theme="highcontrast"))
    store.save(replace(loaded, theme="highcontrast", enable_ai=True))

    payload = json.loads(store.path.read_text(encoding="utf-8"))
    assert payload["theme"] == "highcontrast"
    assert payload["enableAI"] is True


def test_default_languages_only_fill_unset_values() -> None:
    preferences = Preferences(src_lang="en")

    updated = preferences.with_default_languages("de", "fr")

    assert (updated.src_lang, updated.tgt_lang) == ("en", "fr")
    assert updated.with_default_languages("es", "it") is updated


def test_vault_rejects_foreign_prefix(tmp_path: Path) -> None:
    vault = SecretVault(key_path=tmp_path / "preferences.key")

    assert vault.decrypt(vault.encrypt("abc")) == "abc"
    assert vault.encrypt("") == ""
    with pytest.raises(ValueError):
        vault.decrypt("dpapi:abc")


def test_redact_secret() -> None:
    assert redact_secret("") == ""
    assert redact_secret("abcd") == "****"
    assert redact_secret("sk-ant-123456") == "sk*********56"
