from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .errors import InvalidFrontmatter
from .locator import SKILL_FILE_NAME
from .report import Report

_NAME_RE = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")
_DELIMITER = "---"

_MAX_NAME_LEN = 64
_MAX_DESCRIPTION_LEN = 1024
_MAX_LICENSE_LEN = 256
_MAX_COMPATIBILITY_LEN = 500
_MAX_ALLOWED_TOOLS_LEN = 2048

_OPTIONAL_FIELDS: tuple[tuple[str, str, int], ...] = (
    ("license", "license", _MAX_LICENSE_LEN),
    ("compatibility", "compatibility", _MAX_COMPATIBILITY_LEN),
    ("allowed_tools", "allowed-tools", _MAX_ALLOWED_TOOLS_LEN),
)

# Absent optional keys stay None; present-but-null keys are normalized to "".
_MISSING = object()


@dataclass(frozen=True)
class SkillManifest:
    name: str
    description: str
    license: str | None = None
    compatibility: str | None = None
    allowed_tools: str | None = None
    metadata: dict[str, str] | None = field(default=None)

    def to_public_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"name": self.name, "description": self.description}
        if self.license is not None:
            data["license"] = self.license
        if self.compatibility is not None:
            data["compatibility"] = self.compatibility
        if self.allowed_tools is not None:
            data["allowed-tools"] = self.allowed_tools
        if self.metadata is not None:
            data["metadata"] = dict(self.metadata)
        return data


def _as_text(key: str, value: object) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    raise InvalidFrontmatter(f"'{key}' must be a string")


def _lookup(data: dict, *keys: str) -> object:
    for key in keys:
        if key in data:
            return data[key]
    return _MISSING


def split_frontmatter(contents: str) -> str:
    """Return the raw YAML text between the opening and closing delimiters."""
    lines = contents.splitlines()
    if lines and lines[0].startswith("\ufeff"):
        lines[0] = lines[0][1:]
    if not lines or lines[0].strip() != _DELIMITER:
        raise InvalidFrontmatter(f"{SKILL_FILE_NAME} must start with YAML frontmatter ({_DELIMITER})")

    body: list[str] = []
    for line in lines[1:]:
        if line.strip() == _DELIMITER:
            break
        body.append(line)
    else:
        raise InvalidFrontmatter(f"{SKILL_FILE_NAME} frontmatter is not closed ({_DELIMITER})")

    if not any(line.strip() for line in body):
        raise InvalidFrontmatter(f"{SKILL_FILE_NAME} frontmatter is empty")
    return "\n".join(body)


def parse_frontmatter(contents: str) -> SkillManifest:
    raw = split_frontmatter(contents)
    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as exc:
        raise InvalidFrontmatter(str(exc)) from exc
    if not isinstance(data, dict):
        raise InvalidFrontmatter("frontmatter must be a mapping")

    name = _lookup(data, "name")
    description = _lookup(data, "description")
    optional: dict[str, str | None] = {}
    for attr, key, _max_len in _OPTIONAL_FIELDS:
        value = _lookup(data, key, attr)
        optional[attr] = None if value is _MISSING else _as_text(key, value)

    metadata_raw = _lookup(data, "metadata")
    metadata: dict[str, str] | None = None
    if metadata_raw is not _MISSING and metadata_raw is not None:
        if not isinstance(metadata_raw, dict):
            raise InvalidFrontmatter("'metadata' must be a mapping of strings")
        metadata = {}
        for key, value in metadata_raw.items():
            metadata[_as_text("metadata key", key)] = _as_text(f"metadata.{key}", value)

    return SkillManifest(
        name=_as_text("name", None if name is _MISSING else name),
        description=_as_text("description", None if description is _MISSING else description),
        license=optional["license"],
        compatibility=optional["compatibility"],
        allowed_tools=optional["allowed_tools"],
        metadata=metadata,
    )


def read_frontmatter(skill_dir: Path) -> SkillManifest:
    skill_md = Path(skill_dir) / SKILL_FILE_NAME
    try:
        contents = skill_md.read_text(encoding="utf-8")
    except UnicodeDecodeError as exc:
        raise InvalidFrontmatter(f"{SKILL_FILE_NAME} is not valid UTF-8") from exc
    except OSError as exc:
        raise InvalidFrontmatter(f"failed to read {skill_md}: {exc}") from exc
    return parse_frontmatter(contents)


def validate_name(name: str, skill_dir: Path, report: Report) -> None:
    trimmed = name.strip()
    if not trimmed:
        report.error("name is required", skill_dir)
        return
    if len(trimmed) > _MAX_NAME_LEN:
        report.error(f"name must be <= {_MAX_NAME_LEN} characters", skill_dir)
    if not _NAME_RE.match(trimmed):
        report.error("name must be lowercase alphanumeric with hyphens", skill_dir)
    if "--" in trimmed:
        report.error("name must not contain consecutive hyphens", skill_dir)
    dir_name = Path(skill_dir).resolve().name
    if dir_name != trimmed:
        report.error("name must match the skill directory name", skill_dir)


def validate_description(description: str, skill_md: Path, report: Report) -> None:
    trimmed = description.strip()
    if not trimmed:
        report.error("description is required", skill_md)
        return
    if len(trimmed) > _MAX_DESCRIPTION_LEN:
        report.error(f"description must be <= {_MAX_DESCRIPTION_LEN} characters", skill_md)


def validate_optional_field(label: str, value: str | None, max_len: int, skill_md: Path, report: Report) -> None:
    if value is None:
        return
    if not value.strip():
        report.warning(f"{label} should not be empty", skill_md)
    elif len(value) > max_len:
        report.error(f"{label} must be <= {max_len} characters", skill_md)


def validate_manifest(manifest: SkillManifest, skill_dir: Path) -> Report:
    skill_dir = Path(skill_dir)
    skill_md = skill_dir / SKILL_FILE_NAME
    report = Report()
    validate_name(manifest.name, skill_dir, report)
    validate_description(manifest.description, skill_md, report)
    for attr, label, max_len in _OPTIONAL_FIELDS:
        validate_optional_field(label, getattr(manifest, attr), max_len, skill_md, report)
    if manifest.metadata:
        for key, value in manifest.metadata.items():
            if not key.strip() or not value.strip():
                report.warning("metadata entries should not be empty", skill_md)
                break
    return report


def validate_skill_dir(skill_dir: Path) -> tuple[Report, SkillManifest | None]:
    """Validate a skill directory.

    Returns the report and, when it holds no errors, the parsed manifest.
    An unparsable SKILL.md yields a single error and no field checks.
    """
    skill_dir = Path(skill_dir)
    report = Report()
    if not skill_dir.exists():
        report.error("path does not exist", skill_dir)
        return report, None
    if not skill_dir.is_dir():
        report.error("skill path must be a directory", skill_dir)
        return report, None

    skill_md = skill_dir / SKILL_FILE_NAME
    if skill_md.is_symlink():
        report.error(f"{SKILL_FILE_NAME} must not be a symlink", skill_md)
        return report, None
    if not skill_md.is_file():
        report.error(f"{SKILL_FILE_NAME} is missing", skill_md)
        return report, None

    try:
        manifest = read_frontmatter(skill_dir)
    except InvalidFrontmatter as exc:
        report.error(f"invalid frontmatter: {exc}", skill_md)
        return report, None

    report.issues.extend(validate_manifest(manifest, skill_dir).issues)
    if report.has_errors():
        return report, None
    return report, manifest
