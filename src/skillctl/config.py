from __future__ import annotations

import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

import yaml

from .errors import ConfigError

MAX_DOWNLOAD_BYTES = 200 * 1024 * 1024
MAX_EXTRACTED_BYTES = 512 * 1024 * 1024
MAX_ARCHIVE_ENTRIES = 5_000
DEFAULT_DOWNLOAD_TIMEOUT_S = 60.0

SKILLS_HOME_DIR_NAME = ".skills"
SKILLS_DATA_DIR_NAME = "data"
CONFIG_FILE_NAME = "config.yaml"


def _read_env_bool(*keys: str, default: bool) -> bool:
    for key in keys:
        raw = os.getenv(key)
        if raw is None:
            continue
        val = str(raw).strip().lower()
        if val in {"1", "true", "yes", "y", "on"}:
            return True
        if val in {"0", "false", "no", "n", "off"}:
            return False
    return bool(default)


def _read_env_int(*keys: str, default: int, min_value: int, max_value: int) -> int:
    for key in keys:
        raw = os.getenv(key)
        if raw is None:
            continue
        try:
            val = int(str(raw).strip())
        except ValueError:
            continue
        val = max(int(min_value), min(int(max_value), int(val)))
        return int(val)
    return int(default)


def _read_env_float(*keys: str, default: float, min_value: float) -> float:
    for key in keys:
        raw = os.getenv(key)
        if raw is None:
            continue
        try:
            val = float(str(raw).strip())
        except ValueError:
            continue
        return max(float(min_value), val)
    return float(default)


@dataclass(frozen=True)
class SkillsConfig:
    skip_external_scans: bool = False
    max_download_bytes: int = MAX_DOWNLOAD_BYTES
    max_extracted_bytes: int = MAX_EXTRACTED_BYTES
    max_archive_entries: int = MAX_ARCHIVE_ENTRIES
    download_timeout_s: float = DEFAULT_DOWNLOAD_TIMEOUT_S

    @staticmethod
    def from_env() -> "SkillsConfig":
        # Limits can be lowered through the environment, never raised.
        return SkillsConfig(
            skip_external_scans=_read_env_bool("SKILLCTL_SKIP_EXTERNAL_SCANS", "SKILL_SKIP_EXTERNAL_SCANS", default=False),
            max_download_bytes=_read_env_int(
                "SKILLCTL_MAX_DOWNLOAD_BYTES", default=MAX_DOWNLOAD_BYTES, min_value=1, max_value=MAX_DOWNLOAD_BYTES
            ),
            max_extracted_bytes=_read_env_int(
                "SKILLCTL_MAX_EXTRACTED_BYTES", default=MAX_EXTRACTED_BYTES, min_value=1, max_value=MAX_EXTRACTED_BYTES
            ),
            max_archive_entries=_read_env_int(
                "SKILLCTL_MAX_ARCHIVE_ENTRIES", default=MAX_ARCHIVE_ENTRIES, min_value=1, max_value=MAX_ARCHIVE_ENTRIES
            ),
            download_timeout_s=_read_env_float("SKILLCTL_DOWNLOAD_TIMEOUT_S", default=DEFAULT_DOWNLOAD_TIMEOUT_S, min_value=1.0),
        )


class Assistant(str, Enum):
    CODEX = "codex"
    CLAUDECODE = "claudecode"
    OPENCODE = "opencode"

    @classmethod
    def parse(cls, value: str) -> "Assistant":
        raw = str(value or "").strip().lower()
        aliases = {
            "codex": cls.CODEX,
            "claudecode": cls.CLAUDECODE,
            "claude-code": cls.CLAUDECODE,
            "claude_code": cls.CLAUDECODE,
            "opencode": cls.OPENCODE,
            "open-code": cls.OPENCODE,
            "open_code": cls.OPENCODE,
        }
        if raw not in aliases:
            raise ConfigError(f"unknown assistant '{value}'. Use codex, claudecode, or opencode.")
        return aliases[raw]

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class AppPaths:
    config_dir: Path
    config_file: Path
    skills_base_dir: Path

    @staticmethod
    def from_env() -> "AppPaths":
        raw = os.getenv("SKILLCTL_HOME")
        home = Path(raw).expanduser() if raw else Path.home() / SKILLS_HOME_DIR_NAME
        return AppPaths.for_home(home)

    @staticmethod
    def for_home(home: Path) -> "AppPaths":
        home = Path(home)
        return AppPaths(
            config_dir=home,
            config_file=home / CONFIG_FILE_NAME,
            skills_base_dir=home / SKILLS_DATA_DIR_NAME,
        )


@dataclass
class Config:
    default_assistant: Assistant | None = None
    skills_base_dir: Path | None = None
    skills_roots: dict[Assistant, Path] = field(default_factory=dict)

    @staticmethod
    def load(paths: AppPaths) -> "Config":
        if not paths.config_file.exists():
            return Config()
        try:
            data = yaml.safe_load(paths.config_file.read_text(encoding="utf-8"))
        except (OSError, yaml.YAMLError) as exc:
            raise ConfigError(f"failed to parse config file {paths.config_file}: {exc}") from exc
        return Config.from_dict(data or {})

    @staticmethod
    def from_dict(data: Any) -> "Config":
        if not isinstance(data, dict):
            raise ConfigError("config file must contain a mapping")
        default = data.get("default_assistant")
        base_dir = data.get("skills_base_dir")
        roots_raw = data.get("skills_roots") or {}
        if not isinstance(roots_raw, dict):
            raise ConfigError("skills_roots must be a mapping")
        roots: dict[Assistant, Path] = {}
        for key, value in roots_raw.items():
            if value is None:
                continue
            roots[Assistant.parse(str(key))] = Path(str(value)).expanduser()
        return Config(
            default_assistant=Assistant.parse(default) if default else None,
            skills_base_dir=Path(str(base_dir)).expanduser() if base_dir else None,
            skills_roots=roots,
        )

    def skills_root_for(self, paths: AppPaths, assistant: Assistant) -> Path:
        override = self.skills_roots.get(assistant)
        if override is not None:
            return override
        base_dir = self.skills_base_dir or paths.skills_base_dir
        return base_dir / assistant.value
