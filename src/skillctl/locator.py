from __future__ import annotations

import os
from pathlib import Path, PurePath

from .errors import AmbiguousSkillArchive, NoSkillFound, SkillPathInvalid

SKILL_FILE_NAME = "SKILL.md"

# VCS data, build artifacts and OS metadata. Never located, copied or counted.
SKIP_NAMES: frozenset[str] = frozenset(
    {
        ".git",
        "target",
        "__pycache__",
        ".DS_Store",
        "__MACOSX",
        "Thumbs.db",
    }
)


def should_skip(rel_path: PurePath) -> bool:
    return any(part in SKIP_NAMES for part in rel_path.parts)


def _is_manifest(path: Path) -> bool:
    # A linked SKILL.md would be read from outside the tree and dropped on copy.
    return not path.is_symlink() and path.is_file()


def locate_skill_root(tree: Path) -> Path:
    """Return the single directory under tree that holds a SKILL.md file."""
    tree = Path(tree)
    if _is_manifest(tree / SKILL_FILE_NAME):
        return tree

    found: set[Path] = set()
    for dirpath, dirnames, filenames in os.walk(tree, followlinks=False):
        dirnames[:] = sorted(d for d in dirnames if d not in SKIP_NAMES)
        if SKILL_FILE_NAME not in filenames:
            continue
        if not _is_manifest(Path(dirpath) / SKILL_FILE_NAME):
            continue
        found.add(Path(dirpath))

    if not found:
        raise NoSkillFound(f"no {SKILL_FILE_NAME} file found under {tree}")
    if len(found) > 1:
        listed = ", ".join(sorted(p.relative_to(tree).as_posix() for p in found))
        raise AmbiguousSkillArchive(f"source contains multiple {SKILL_FILE_NAME} files ({listed}); use a source with a single skill")
    return found.pop()


def resolve_skill_path(root: Path, skill: str) -> Path:
    """Resolve a user supplied skill sub-path inside an acquired tree."""
    root = Path(root)
    rel = PurePath(str(skill or "").strip())
    if not rel.parts:
        raise SkillPathInvalid("skill path must not be empty")
    if rel.is_absolute() or rel.anchor:
        raise SkillPathInvalid("skill path must be relative")
    if ".." in rel.parts:
        raise SkillPathInvalid("skill path must not contain '..'")

    candidates = [root / rel]
    if rel.parts[0] != "skills":
        candidates.append(root / "skills" / rel)
    if rel.parts[0] != "skill":
        candidates.append(root / "skill" / rel)

    for candidate in candidates:
        if candidate.is_symlink():
            continue
        if candidate.is_dir() and _is_manifest(candidate / SKILL_FILE_NAME):
            return candidate

    raise NoSkillFound(
        f"skill '{skill}' not found. Expected {SKILL_FILE_NAME} in <repo>/{skill}, <repo>/skills/{skill}, or <repo>/skill/{skill}"
    )
