from __future__ import annotations

import os
import re
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, Sequence

from .errors import ExternalScanLaunchFailed
from .logging import get_logger
from .report import ExternalScanResult, ScanReport, Severity

logger = get_logger(__name__)

MAX_FILE_BYTES = 10 * 1024 * 1024

BINARY_EXTENSIONS: frozenset[str] = frozenset({"exe", "dll", "dylib", "so", "bat", "cmd", "ps1"})
SCRIPT_EXTENSIONS: frozenset[str] = frozenset({"sh", "bash", "zsh", "ps1", "bat", "cmd", "py", "js", "ts"})

SECRET_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"AKIA[0-9A-Z]{16}"),
    re.compile(r"ASIA[0-9A-Z]{16}"),
    re.compile(r"ghp_[A-Za-z0-9]{36,}"),
    re.compile(r"github_pat_[A-Za-z0-9_]{80,}"),
    re.compile(r"xox[baprs]-[A-Za-z0-9-]{10,}"),
    re.compile(r"-----BEGIN (?:RSA |OPENSSH |EC |DSA |PGP )?PRIVATE KEY-----"),
)

DANGEROUS_COMMANDS: tuple[re.Pattern[str], ...] = (
    re.compile(r"rm\s+-rf\s+/"),
    re.compile(r"curl\s+[^\n]+\|\s*(?:ba)?sh"),
    re.compile(r"wget\s+[^\n]+\|\s*(?:ba)?sh"),
    re.compile(r"chmod\s+(?:-R\s+)?777"),
    re.compile(r"sudo\s+"),
    re.compile(r"(?i)(?:invoke-webrequest|iwr)\s+[^\n]+\|\s*(?:invoke-expression|iex)"),
)


@dataclass(frozen=True)
class ExternalScanner:
    """An optional host tool invoked against the tree root when present."""

    name: str
    binary: str
    args: tuple[str, ...] = ()

    def command(self, executable: str, root: Path) -> list[str]:
        return [executable, *self.args, str(root)]


DEFAULT_EXTERNAL_SCANNERS: tuple[ExternalScanner, ...] = (
    ExternalScanner(name="trivy", binary="trivy", args=("fs", "--quiet")),
    ExternalScanner(name="clamscan", binary="clamscan", args=("-r",)),
)


def probe_external_scanners(
    scanners: Iterable[ExternalScanner] = DEFAULT_EXTERNAL_SCANNERS,
    *,
    which: Callable[[str], str | None] = shutil.which,
) -> list[tuple[ExternalScanner, str]]:
    available: list[tuple[ExternalScanner, str]] = []
    for scanner in scanners:
        executable = which(scanner.binary)
        if executable is None:
            logger.debug("external scanner %s not found, skipping", scanner.name)
            continue
        available.append((scanner, executable))
    return available


def _extension(path: Path) -> str:
    return path.suffix[1:].lower() if path.suffix else ""


def is_script(path: Path) -> bool:
    return _extension(path) in SCRIPT_EXTENSIONS


def _scan_file(path: Path, report: ScanReport) -> None:
    try:
        size = int(path.stat().st_size)
    except OSError as exc:
        report.warning(f"failed to stat file: {exc}", path)
        return

    too_large = size > MAX_FILE_BYTES
    if too_large:
        report.warning(f"large file ({size} bytes)", path)

    if _extension(path) in BINARY_EXTENSIONS:
        report.warning("executable or binary file detected", path)

    if too_large:
        return

    try:
        data = path.read_bytes()
    except OSError as exc:
        report.warning(f"failed to read file: {exc}", path)
        return

    if b"\x00" in data:
        report.warning("binary content detected", path)
        return

    try:
        text = data.decode("utf-8")
    except UnicodeDecodeError:
        report.warning("non-utf8 file content detected", path)
        return

    for pattern in SECRET_PATTERNS:
        if pattern.search(text):
            report.error("potential secret detected", path)
            break

    if is_script(path):
        for pattern in DANGEROUS_COMMANDS:
            if pattern.search(text):
                report.warning("risky command detected in script", path)
                break


def scan_tree(root: Path, report: ScanReport | None = None) -> ScanReport:
    """Apply the built-in heuristics to every entry under root."""
    root = Path(root)
    report = report if report is not None else ScanReport()

    def _on_error(exc: OSError) -> None:
        report.warning(f"failed to read directory: {exc.strerror or exc}", Path(exc.filename) if exc.filename else root)

    for dirpath, dirnames, filenames in os.walk(root, onerror=_on_error, followlinks=False):
        current = Path(dirpath)
        kept: list[str] = []
        for name in sorted(dirnames):
            if (current / name).is_symlink():
                report.warning("symlink detected", current / name)
                continue
            kept.append(name)
        dirnames[:] = kept
        for name in sorted(filenames):
            path = current / name
            if path.is_symlink():
                report.warning("symlink detected", path)
                continue
            if not path.is_file():
                report.warning("special file detected", path)
                continue
            _scan_file(path, report)
    return report


def run_external_scanner(scanner: ExternalScanner, executable: str, root: Path) -> ExternalScanResult:
    """Run one external tool; OSError on launch propagates to the caller."""
    cmd = scanner.command(executable, root)
    logger.info("running external scanner: %s", " ".join(cmd))
    result = subprocess.run(cmd, capture_output=True, text=True, errors="replace", check=False)
    combined = f"{result.stdout or ''}{result.stderr or ''}".strip()
    severity = Severity.INFO if result.returncode == 0 else Severity.WARNING
    return ExternalScanResult(
        tool=scanner.name,
        severity=severity,
        output=combined or f"{scanner.name} produced no output",
    )


def scan_path(
    path: Path,
    *,
    scanners: Sequence[tuple[ExternalScanner, str]] | None = None,
) -> ScanReport:
    """Scan a candidate skill tree.

    `scanners` is the capability list from probe_external_scanners(); when
    omitted the default tools are probed. Pass an empty list to run only the
    built-in heuristics. A tool that fails to launch does not stop the other
    tools; ExternalScanLaunchFailed is raised afterwards with the full report.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"path does not exist: {path}")

    report = scan_tree(path)

    if scanners is None:
        scanners = probe_external_scanners()
    failed: list[str] = []
    errors: list[str] = []
    for scanner, executable in scanners:
        try:
            report.external.append(run_external_scanner(scanner, executable, path))
        except OSError as exc:
            logger.error("failed to launch external scanner %s: %s", scanner.name, exc)
            failed.append(scanner.name)
            errors.append(f"{scanner.name}: {exc}")

    if failed:
        raise ExternalScanLaunchFailed("failed to run " + "; ".join(errors), tools=failed, report=report)
    return report
