from __future__ import annotations

from pathlib import Path

import pytest


def test_locate_uses_root_when_manifest_present(tmp_path: Path) -> None:
    from skillctl.locator import locate_skill_root

    (tmp_path / "SKILL.md").write_text("---\nname: root-skill\ndescription: test\n---\n", encoding="utf-8")
    assert locate_skill_root(tmp_path) == tmp_path


def test_locate_accepts_single_nested_skill(tmp_path: Path, make_skill) -> None:
    from skillctl.locator import locate_skill_root

    nested = make_skill(tmp_path / "repo-main" / "skills", "nested-skill")
    assert locate_skill_root(tmp_path) == nested


def test_locate_rejects_multiple_skills(tmp_path: Path, make_skill) -> None:
    from skillctl.errors import AmbiguousSkillArchive
    from skillctl.locator import locate_skill_root

    make_skill(tmp_path, "skill-one")
    make_skill(tmp_path / "deeper", "skill-two")
    with pytest.raises(AmbiguousSkillArchive):
        locate_skill_root(tmp_path)


def test_locate_errors_when_missing(tmp_path: Path) -> None:
    from skillctl.errors import NoSkillFound
    from skillctl.locator import locate_skill_root

    (tmp_path / "README.md").write_text("nothing here", encoding="utf-8")
    with pytest.raises(NoSkillFound):
        locate_skill_root(tmp_path)


def test_locate_ignores_filtered_directories(tmp_path: Path, make_skill) -> None:
    from skillctl.locator import locate_skill_root

    real = make_skill(tmp_path, "real-skill")
    make_skill(tmp_path / ".git", "ghost")
    make_skill(tmp_path / "__MACOSX", "real-skill")
    make_skill(tmp_path / "target", "build-copy")
    assert locate_skill_root(tmp_path) == real


def test_locate_requires_exact_file_name(tmp_path: Path) -> None:
    from skillctl.errors import NoSkillFound
    from skillctl.locator import locate_skill_root

    (tmp_path / "demo").mkdir()
    (tmp_path / "demo" / "skill.md").write_text("---\nname: demo\n---\n", encoding="utf-8")
    with pytest.raises(NoSkillFound):
        locate_skill_root(tmp_path)


def test_resolve_skill_path_uses_direct_match(tmp_path: Path, make_skill) -> None:
    from skillctl.locator import resolve_skill_path

    direct = make_skill(tmp_path, "direct-skill")
    assert resolve_skill_path(tmp_path, "direct-skill") == direct


@pytest.mark.parametrize("container", ["skills", "skill"])
def test_resolve_skill_path_falls_back_to_container_dirs(tmp_path: Path, make_skill, container: str) -> None:
    from skillctl.locator import resolve_skill_path

    nested = make_skill(tmp_path / container, "nested-skill")
    assert resolve_skill_path(tmp_path, "nested-skill") == nested


@pytest.mark.parametrize("value", ["../escape", "a/../../b", "/etc", ""])
def test_resolve_skill_path_rejects_unsafe_values(tmp_path: Path, value: str) -> None:
    from skillctl.errors import SkillPathInvalid
    from skillctl.locator import resolve_skill_path

    with pytest.raises(SkillPathInvalid):
        resolve_skill_path(tmp_path, value)


def test_resolve_skill_path_reports_missing(tmp_path: Path) -> None:
    from skillctl.errors import NoSkillFound
    from skillctl.locator import resolve_skill_path

    with pytest.raises(NoSkillFound):
        resolve_skill_path(tmp_path, "absent")


def test_should_skip_matches_any_component() -> None:
    from pathlib import PurePath

    from skillctl.locator import should_skip

    assert should_skip(PurePath(".git/config"))
    assert should_skip(PurePath("docs/.DS_Store"))
    assert should_skip(PurePath("target/debug/out.bin"))
    assert not should_skip(PurePath("scripts/run.sh"))


def test_locate_ignores_symlinked_manifest(tmp_path: Path, make_skill) -> None:
    import os

    from skillctl.errors import NoSkillFound
    from skillctl.locator import locate_skill_root, resolve_skill_path

    outside = make_skill(tmp_path / "outside", "elsewhere")
    tree = tmp_path / "tree"
    (tree / "linked").mkdir(parents=True)
    try:
        os.symlink(outside / "SKILL.md", tree / "SKILL.md")
        os.symlink(outside / "SKILL.md", tree / "linked" / "SKILL.md")
    except (OSError, NotImplementedError):
        pytest.skip("symlinks not supported")

    with pytest.raises(NoSkillFound):
        locate_skill_root(tree)
    with pytest.raises(NoSkillFound):
        resolve_skill_path(tree, "linked")

    real = make_skill(tree, "real-skill")
    assert locate_skill_root(tree) == real
