import pytest
from pydantic import ValidationError

from Restorator.config import Settings, load_settings


def test_defaults(tmp_path, monkeypatch):
    # Ensure no config.toml in temp dir so defaults apply
    monkeypatch.chdir(tmp_path)
    s = load_settings()
    assert s.import_host == "localhost"
    assert s.import_port == 8080
    assert s.import_commands_path == "/v3/commands"
    assert s.import_export_root == "puppetdb-bak"
    assert s.import_metadata_file == "export-metadata.json"
    assert s.import_facts_use_manifest_version is False
    assert s.logging_file_path == "logs/restorator.jsonl"
    assert s.logging_console_format == "console"


def test_toml_source(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    (tmp_path / "config.toml").write_text(
        """
[import]
host = "puppetdb.internal"
port = 8081
facts_use_manifest_version = true

[logging]
level = "debug"
console = true
to_file = false
console_format = "json"
"""
    )
    s = load_settings()
    assert s.import_host == "puppetdb.internal"
    assert s.import_port == 8081
    assert s.import_facts_use_manifest_version is True
    assert s.logging_level == "debug"
    assert s.logging_console == "DEBUG"
    assert s.logging_file == "NONE"
    assert s.logging_to_file is False
    assert s.logging_console_format == "json"


def test_env_overrides_toml(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    (tmp_path / "config.toml").write_text('[import]\nhost = "from-toml"\n')
    monkeypatch.setenv("IMPORT_HOST", "from-env")
    assert load_settings().import_host == "from-env"


def test_init_overrides_everything(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("IMPORT_PORT", "9000")
    assert Settings(import_port=9001).import_port == 9001


def test_unknown_console_format_is_rejected(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    with pytest.raises(ValidationError):
        Settings(logging_console_format="xml")
