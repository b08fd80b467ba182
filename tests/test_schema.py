from __future__ import annotations

from pathlib import Path

import pytest


def _skill_md(skill_dir: Path, text: str) -> Path:
    skill_dir.mkdir(parents=True, exist_ok=True)
    (skill_dir / "SKILL.md").write_text(text, encoding="utf-8")
    return skill_dir


def _messages(report) -> list[str]:
    return [issue.message for issue in report.issues]


def test_validate_accepts_valid_skill(tmp_path: Path, make_skill) -> None:
    from skillctl.schema import validate_skill_dir

    skill_dir = make_skill(tmp_path, "pdf-processing")
    report, manifest = validate_skill_dir(skill_dir)
    assert not report.has_errors()
    assert report.issues == []
    assert manifest is not None
    assert manifest.name == "pdf-processing"
    assert manifest.description == "Process PDFs safely."


@pytest.mark.parametrize(
    ("dir_name", "name", "expected"),
    [
        ("invalid-name", "Invalid", "name must be lowercase alphanumeric with hyphens"),
        ("a--b", "a--b", "name must not contain consecutive hyphens"),
        ("-lead", "-lead", "name must be lowercase alphanumeric with hyphens"),
        ("other-dir", "pdf-processing", "name must match the skill directory name"),
    ],
)
def test_validate_rejects_bad_names(tmp_path: Path, dir_name: str, name: str, expected: str) -> None:
    from skillctl.schema import validate_skill_dir

    skill_dir = _skill_md(tmp_path / dir_name, f"---\nname: {name}\ndescription: nope\n---\n")
    report, manifest = validate_skill_dir(skill_dir)
    assert report.has_errors()
    assert manifest is None
    assert expected in _messages(report)


def test_validate_rejects_long_name(tmp_path: Path) -> None:
    from skillctl.schema import validate_skill_dir

    name = "a" * 65
    report, _ = validate_skill_dir(_skill_md(tmp_path / name, f"---\nname: {name}\ndescription: long\n---\n"))
    assert "name must be <= 64 characters" in _messages(report)


def test_validate_requires_skill_md(tmp_path: Path) -> None:
    from skillctl.report import Severity
    from skillctl.schema import validate_skill_dir

    skill_dir = tmp_path / "missing-skill"
    skill_dir.mkdir()
    report, manifest = validate_skill_dir(skill_dir)
    assert manifest is None
    assert len(report.issues) == 1
    assert report.issues[0].severity is Severity.ERROR
    assert report.issues[0].message == "SKILL.md is missing"


@pytest.mark.parametrize(
    "text",
    [
        "name: demo\ndescription: no fence\n",
        "intro\n---\nname: demo\ndescription: x\n---\n",
        "---\nname: demo\ndescription: never closed\n",
        "---\n---\n",
        "---\n- just\n- a list\n---\n",
        "---\nname: [unbalanced\n---\n",
    ],
)
def test_invalid_frontmatter_is_a_single_error(tmp_path: Path, text: str) -> None:
    from skillctl.schema import validate_skill_dir

    report, manifest = validate_skill_dir(_skill_md(tmp_path / "demo", text))
    assert manifest is None
    assert len(report.issues) == 1
    assert report.issues[0].message.startswith("invalid frontmatter")


def test_description_rules(tmp_path: Path) -> None:
    from skillctl.schema import validate_skill_dir

    report, _ = validate_skill_dir(_skill_md(tmp_path / "demo", "---\nname: demo\ndescription: ''\n---\n"))
    assert "description is required" in _messages(report)

    long_text = "d" * 1025
    report, _ = validate_skill_dir(_skill_md(tmp_path / "demo", f"---\nname: demo\ndescription: {long_text}\n---\n"))
    assert "description must be <= 1024 characters" in _messages(report)


def test_missing_name_is_reported(tmp_path: Path) -> None:
    from skillctl.schema import validate_skill_dir

    report, _ = validate_skill_dir(_skill_md(tmp_path / "demo", "---\ndescription: only\n---\n"))
    assert "name is required" in _messages(report)


def test_optional_fields_warn_when_blank_and_error_when_long(tmp_path: Path) -> None:
    from skillctl.report import Severity
    from skillctl.schema import validate_skill_dir

    text = "---\nname: demo\ndescription: ok\nlicense: ''\ncompatibility: '   '\n---\n"
    report, manifest = validate_skill_dir(_skill_md(tmp_path / "demo", text))
    assert not report.has_errors()
    assert manifest is not None
    assert {issue.message for issue in report.issues} == {"license should not be empty", "compatibility should not be empty"}
    assert all(issue.severity is Severity.WARNING for issue in report.issues)

    tools = "Bash " * 500
    text = f"---\nname: demo\ndescription: ok\nallowed-tools: {tools}\nlicense: {'L' * 257}\n---\n"
    report, manifest = validate_skill_dir(_skill_md(tmp_path / "demo", text))
    assert manifest is None
    assert "allowed-tools must be <= 2048 characters" in _messages(report)
    assert "license must be <= 256 characters" in _messages(report)


def test_metadata_blank_entries_warn_once(tmp_path: Path) -> None:
    from skillctl.schema import validate_skill_dir

    text = "---\nname: demo\ndescription: ok\nmetadata:\n  author: ''\n  team: ' '\n  version: '1.0'\n---\n"
    report, manifest = validate_skill_dir(_skill_md(tmp_path / "demo", text))
    assert not report.has_errors()
    assert manifest is not None
    assert _messages(report) == ["metadata entries should not be empty"]


def test_parse_frontmatter_reads_all_fields() -> None:
    from skillctl.schema import parse_frontmatter

    manifest = parse_frontmatter(
        "---\n"
        "name: pdf-processing\n"
        "description: Extract text from PDFs.\n"
        "license: Apache-2.0\n"
        "compatibility: Requires poppler\n"
        "allowed-tools: Bash(pdftotext:*) Read\n"
        "metadata:\n"
        "  author: example-org\n"
        "---\n"
        "# Body\n"
    )
    assert manifest.license == "Apache-2.0"
    assert manifest.compatibility == "Requires poppler"
    assert manifest.allowed_tools == "Bash(pdftotext:*) Read"
    assert manifest.metadata == {"author": "example-org"}
    assert manifest.to_public_dict()["allowed-tools"] == "Bash(pdftotext:*) Read"


def test_non_string_field_is_invalid_frontmatter() -> None:
    from skillctl.errors import InvalidFrontmatter
    from skillctl.schema import parse_frontmatter

    with pytest.raises(InvalidFrontmatter):
        parse_frontmatter("---\nname: demo\ndescription: [a, b]\n---\n")


def test_symlinked_skill_md_is_rejected(tmp_path: Path) -> None:
    import os

    from skillctl.schema import validate_skill_dir

    outside = tmp_path / "outside.md"
    outside.write_text("---\nname: demo\ndescription: Linked in.\n---\n", encoding="utf-8")
    skill_dir = tmp_path / "demo"
    skill_dir.mkdir()
    try:
        os.symlink(outside, skill_dir / "SKILL.md")
    except (OSError, NotImplementedError):
        pytest.skip("symlinks not supported")

    report, manifest = validate_skill_dir(skill_dir)
    assert manifest is None
    assert _messages(report) == ["SKILL.md must not be a symlink"]
