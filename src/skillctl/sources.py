from __future__ import annotations

import os
import shutil
import subprocess
import tempfile
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from .archive import ArchiveKind, detect_archive_kind, download_archive, extract_archive
from .config import SkillsConfig
from .errors import AcquisitionFailed, SourceNotFound
from .locator import locate_skill_root, resolve_skill_path
from .logging import get_logger

logger = get_logger(__name__)

_GIT_PREFIXES = ("git@", "ssh://", "git://")
_HTTP_PREFIXES = ("http://", "https://")


class SourceKind(Enum):
    LOCAL = "local"
    ARCHIVE = "archive"
    GIT = "git"


def looks_like_http_url(source: str) -> bool:
    return source.lower().startswith(_HTTP_PREFIXES)


def looks_like_git_source(source: str) -> bool:
    return source.lower().startswith(_GIT_PREFIXES) or source.endswith(".git") or looks_like_http_url(source)


def classify_source(source: str) -> SourceKind:
    raw = str(source or "").strip()
    if not raw:
        raise SourceNotFound("source is empty")
    path = Path(raw).expanduser()
    if path.exists():
        if not path.is_dir():
            raise AcquisitionFailed(f"source path is not a directory: {raw}")
        return SourceKind.LOCAL
    if looks_like_http_url(raw) and detect_archive_kind(raw) is not None:
        return SourceKind.ARCHIVE
    if looks_like_git_source(raw):
        return SourceKind.GIT
    raise SourceNotFound(f"source not found: {raw}")


@dataclass
class AcquiredTree:
    """Candidate skill content on disk.

    `path` is the directory to validate and scan. `temp_dir` is set when the
    tree was cloned or downloaded; it is owned and deleted on cleanup.
    Local sources are borrowed and never deleted.
    """

    path: Path
    kind: SourceKind
    temp_dir: Path | None = None

    @property
    def owned(self) -> bool:
        return self.temp_dir is not None

    def cleanup(self) -> None:
        if self.temp_dir is None or not self.temp_dir.exists():
            return
        try:
            shutil.rmtree(self.temp_dir)
        except OSError as exc:
            logger.warning("failed to remove temporary directory %s: %s", self.temp_dir, exc)
            return
        logger.debug("removed temporary directory %s", self.temp_dir)

    def __enter__(self) -> "AcquiredTree":
        return self

    def __exit__(self, *_exc) -> None:
        self.cleanup()


def _make_temp_dir() -> Path:
    return Path(tempfile.mkdtemp(prefix="skillctl-"))


def _pick_skill_dir(tree: Path, skill: str | None) -> Path:
    if skill:
        return resolve_skill_path(tree, skill)
    return locate_skill_root(tree)


def clone_git_source(source: str, dest: Path) -> None:
    # "--" stops git from reading a hostile source string as an option.
    cmd = ["git", "clone", "--depth", "1", "--", source, str(dest)]
    env = dict(os.environ)
    # Never block on a credential prompt for an untrusted remote.
    env["GIT_TERMINAL_PROMPT"] = "0"
    logger.info("cloning %s", source)
    try:
        result = subprocess.run(cmd, capture_output=True, text=True, errors="replace", env=env, check=False)
    except OSError as exc:
        raise AcquisitionFailed(f"failed to run git clone for {source}: {exc}") from exc
    if result.returncode != 0:
        detail = (result.stderr or result.stdout or "").strip()
        raise AcquisitionFailed(f"git clone failed for {source}: {detail or f'exit code {result.returncode}'}")


def fetch_archive(url: str, kind: ArchiveKind, temp_dir: Path, config: SkillsConfig) -> Path:
    archive_path = temp_dir / kind.filename
    download_archive(
        url,
        archive_path,
        kind,
        max_bytes=int(config.max_download_bytes),
        timeout_s=float(config.download_timeout_s),
    )
    extract_dir = temp_dir / "extracted"
    extract_archive(
        archive_path,
        kind,
        extract_dir,
        max_entries=int(config.max_archive_entries),
        max_total_bytes=int(config.max_extracted_bytes),
    )
    archive_path.unlink()
    return extract_dir


def acquire_source(source: str, *, skill: str | None = None, config: SkillsConfig | None = None) -> AcquiredTree:
    """Turn a source string into an AcquiredTree pointing at one skill directory.

    Any failure after the temporary directory exists removes it before the
    exception propagates, so a rejected archive is never left reachable.
    """
    cfg = config or SkillsConfig.from_env()
    raw = str(source or "").strip()
    kind = classify_source(raw)
    logger.info("source %s classified as %s", raw, kind.value)

    if kind is SourceKind.LOCAL:
        local = Path(raw).expanduser()
        path = resolve_skill_path(local, skill) if skill else local
        return AcquiredTree(path=path, kind=kind)

    temp_dir = _make_temp_dir()
    try:
        archive_kind = detect_archive_kind(raw) if kind is SourceKind.ARCHIVE else None
        if archive_kind is not None:
            tree = fetch_archive(raw, archive_kind, temp_dir, cfg)
        else:
            tree = temp_dir / "repo"
            clone_git_source(raw, tree)
        path = _pick_skill_dir(tree, skill)
    except BaseException:
        shutil.rmtree(temp_dir, ignore_errors=True)
        raise
    return AcquiredTree(path=path, kind=kind, temp_dir=temp_dir)
