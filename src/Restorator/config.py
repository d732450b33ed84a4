"""Settings loader for Restorator."""

from pathlib import Path
from typing import Any, Literal

import tomllib
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _toml_settings_source() -> dict[str, Any]:
    """Load settings from config.toml with keys mapped to Settings fields.

    This source has LOWER priority than env/.env so those can override TOML.
    """
    cfg_path = Path("config.toml")
    if not cfg_path.exists():
        return {}
    with cfg_path.open("rb") as f:
        t = tomllib.load(f)
    import_cfg = t.get("import", {}) or {}
    out: dict[str, Any] = {
        "env": t.get("app", {}).get("env", "dev"),
        "import_host": import_cfg.get("host", "localhost"),
        "import_port": import_cfg.get("port", 8080),
        "import_commands_path": import_cfg.get("commands_path", "/v3/commands"),
        "import_export_root": import_cfg.get("export_root", "puppetdb-bak"),
        "import_metadata_file": import_cfg.get("metadata_file", "export-metadata.json"),
        # Facts always go out at the baseline version unless this is set
        "import_facts_use_manifest_version": bool(
            import_cfg.get("facts_use_manifest_version", False)
        ),
        # Logging config
        "logging_level": t.get("logging", {}).get("level", "INFO"),
        # Per-handler levels: strings INFO|DEBUG|WARNING|ERROR|CRITICAL|NONE
        # Backward-compatible: if console/to_file are bools, map True->level, False->NONE
        "logging_console": None,
        "logging_file": None,
        "logging_console_format": t.get("logging", {}).get("console_format", "console"),
        "logging_file_path": t.get("logging", {}).get("file_path", "logs/restorator.jsonl"),
        "logging_max_bytes": t.get("logging", {}).get("max_bytes", 5_000_000),
        "logging_backup_count": t.get("logging", {}).get("backup_count", 5),
    }

    log_cfg = t.get("logging", {}) or {}
    console_val = log_cfg.get("console", None)
    file_val = log_cfg.get("to_file", None)
    overall = str(out["logging_level"]).upper()

    def _norm_level(v, default):
        if isinstance(v, str):
            return v.upper()
        if isinstance(v, bool):
            return default if v else "NONE"
        return default

    out["logging_console"] = _norm_level(console_val, overall)
    out["logging_file"] = _norm_level(file_val, overall)

    # Only set legacy booleans if TOML provided booleans to avoid validation errors
    if isinstance(console_val, bool):
        out["logging_to_console"] = console_val
    if isinstance(file_val, bool):
        out["logging_to_file"] = file_val

    return out


class Settings(BaseSettings):
    env: str = Field(default="dev")

    # --- Import target ---
    import_host: str = "localhost"
    import_port: int = Field(default=8080, ge=1, le=65535)
    import_commands_path: str = "/v3/commands"

    # --- Archive layout ---
    import_export_root: str = "puppetdb-bak"
    import_metadata_file: str = "export-metadata.json"

    # --- Behavior ---
    import_facts_use_manifest_version: bool = False

    # --- Logging ---
    logging_level: str = "INFO"
    logging_console: str = "INFO"
    logging_file: str = "INFO"
    logging_to_console: bool = True
    logging_to_file: bool = True
    # "console" renders aligned key=value lines for terminals; files are always JSON
    logging_console_format: Literal["console", "json"] = "console"
    logging_file_path: str = "logs/restorator.jsonl"
    logging_max_bytes: int = 5_000_000
    logging_backup_count: int = 5

    model_config = SettingsConfigDict(
        env_prefix="",
        case_sensitive=False,
        env_file=".env",
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        # Precedence (highest to lowest):
        # 1) init_settings (explicit overrides in code/tests)
        # 2) dotenv (.env in cwd)
        # 3) env_settings (OS env)
        # 4) TOML (config.toml in cwd)
        # 5) file_secret_settings
        return (
            init_settings,
            dotenv_settings,
            env_settings,
            _toml_settings_source,
            file_secret_settings,
        )


def load_settings() -> Settings:
    return Settings()
