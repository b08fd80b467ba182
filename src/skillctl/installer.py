from __future__ import annotations

import logging
import os
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Iterator

from .config import SkillsConfig
from .errors import InstallError, ScanFailed, SkillAlreadyInstalled, ValidationFailed
from .locator import should_skip
from .logging import get_logger
from .report import Report, ScanReport, Severity
from .scanner import ExternalScanner, probe_external_scanners, scan_path
from .schema import SkillManifest, validate_skill_dir
from .sources import acquire_source

logger = get_logger(__name__)

_LOG_LEVELS = {Severity.ERROR: logging.ERROR, Severity.WARNING: logging.WARNING, Severity.INFO: logging.INFO}


def _log_issues(report: Report) -> None:
    for issue in report.issues:
        logger.log(_LOG_LEVELS[issue.severity], "%s", issue)


def _raise(exc: OSError) -> None:
    raise exc


def _walk_filtered(src: Path) -> Iterator[tuple[Path, list[Path]]]:
    """Yield (relative dir, regular files) pairs, pruning filtered names and symlinks.

    An unreadable directory raises instead of being left out of the copy.
    """
    for dirpath, dirnames, filenames in os.walk(src, onerror=_raise, followlinks=False):
        current = Path(dirpath)
        rel_dir = current.relative_to(src)
        dirnames[:] = sorted(
            d for d in dirnames if not should_skip(rel_dir / d) and not (current / d).is_symlink()
        )
        files: list[Path] = []
        for name in sorted(filenames):
            path = current / name
            if should_skip(rel_dir / name) or path.is_symlink() or not path.is_file():
                continue
            files.append(path)
        yield rel_dir, files


def copy_dir_filtered(src: Path, dest: Path) -> int:
    """Copy src into a new dest directory through the skip filter. Returns files copied."""
    src = Path(src)
    dest = Path(dest)
    dest.mkdir(parents=True, exist_ok=False)
    copied = 0
    for rel_dir, files in _walk_filtered(src):
        target_dir = dest / rel_dir
        target_dir.mkdir(parents=True, exist_ok=True)
        for path in files:
            shutil.copy2(path, target_dir / path.name)
            copied += 1
    return copied


def skill_size(path: Path) -> int:
    total = 0
    for _rel_dir, files in _walk_filtered(Path(path)):
        total += sum(int(p.stat().st_size) for p in files)
    return total


def install_skill(skill_dir: Path, manifest: SkillManifest, dest_root: Path) -> Path:
    dest_root = Path(dest_root)
    dest_root.mkdir(parents=True, exist_ok=True)
    dest_dir = dest_root / manifest.name
    if dest_dir.exists() or dest_dir.is_symlink():
        raise SkillAlreadyInstalled(f"skill already exists at {dest_dir}")
    try:
        copy_dir_filtered(Path(skill_dir), dest_dir)
    except OSError as exc:
        shutil.rmtree(dest_dir, ignore_errors=True)
        raise InstallError(f"failed to copy skill into {dest_dir}: {exc}") from exc
    logger.info("installed %s into %s (%d bytes)", manifest.name, dest_dir, skill_size(dest_dir))
    return dest_dir


@dataclass
class AddResult:
    validation: Report
    scan: ScanReport | None = None
    manifest: SkillManifest | None = None
    installed_path: Path | None = None
    cancelled: bool = False

    @property
    def ok(self) -> bool:
        return self.installed_path is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": self.ok,
            "cancelled": bool(self.cancelled),
            "skill": self.manifest.to_public_dict() if self.manifest else None,
            "validation": self.validation.to_dict(),
            "scan": self.scan.to_dict() if self.scan is not None else None,
            "installed": str(self.installed_path) if self.installed_path else None,
        }


def add_skill(
    source: str,
    dest_root: Path,
    *,
    skill: str | None = None,
    config: SkillsConfig | None = None,
    scanners: list[tuple[ExternalScanner, str]] | None = None,
    confirm: Callable[[AddResult], bool] | None = None,
) -> AddResult:
    """Acquire, validate, scan and install a skill.

    Raises ValidationFailed / ScanFailed when a report carries errors; nothing
    is installed in that case. The acquired tree is always released.
    """
    cfg = config or SkillsConfig.from_env()
    if scanners is None:
        scanners = [] if cfg.skip_external_scans else probe_external_scanners()

    with acquire_source(source, skill=skill, config=cfg) as tree:
        validation, manifest = validate_skill_dir(tree.path)
        _log_issues(validation)
        if validation.has_errors() or manifest is None:
            raise ValidationFailed(validation)

        scan = scan_path(tree.path, scanners=scanners)
        _log_issues(scan)
        for external in scan.external:
            logger.info("[%s] %s", external.tool, external.output)
        if scan.has_errors():
            if tree.owned:
                logger.warning("downloaded files are removed after scan failure")
            raise ScanFailed(scan)

        result = AddResult(validation=validation, scan=scan, manifest=manifest)
        if confirm is not None and not confirm(result):
            result.cancelled = True
            return result

        result.installed_path = install_skill(tree.path, manifest, dest_root)
        return result
