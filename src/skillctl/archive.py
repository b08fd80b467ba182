from __future__ import annotations

import stat
import tarfile
import zipfile
import zlib
from dataclasses import dataclass
from enum import Enum
from pathlib import Path, PurePosixPath
from typing import IO, Callable, Iterable, Iterator

import requests

from .config import MAX_ARCHIVE_ENTRIES, MAX_DOWNLOAD_BYTES, MAX_EXTRACTED_BYTES
from .errors import (
    AcquisitionFailed,
    ArchiveCorrupt,
    ExtractedSizeExceeded,
    PathTraversal,
    TooManyEntries,
    UnsafeLinkEntry,
    UnsupportedContentType,
    UnsupportedEntryType,
)
from .logging import get_logger

logger = get_logger(__name__)

CHUNK_SIZE = 64 * 1024

# zipfile raises RuntimeError for encrypted members and NotImplementedError
# for unknown compression methods.
_READ_ERRORS = (
    OSError,
    EOFError,
    RuntimeError,
    NotImplementedError,
    zlib.error,
    zipfile.BadZipFile,
    tarfile.TarError,
)


class ArchiveKind(Enum):
    ZIP = "zip"
    TAR = "tar"
    TAR_GZ = "tar.gz"

    @property
    def filename(self) -> str:
        return f"skill.{self.value}"

    @property
    def content_types(self) -> tuple[str, ...]:
        return _CONTENT_TYPES[self]


_CONTENT_TYPES: dict[ArchiveKind, tuple[str, ...]] = {
    ArchiveKind.ZIP: ("application/zip", "application/octet-stream", "application/x-zip-compressed"),
    ArchiveKind.TAR: ("application/x-tar", "application/octet-stream"),
    ArchiveKind.TAR_GZ: ("application/gzip", "application/x-gzip", "application/octet-stream"),
}


def detect_archive_kind(source: str) -> ArchiveKind | None:
    """Map a source string to an archive kind using its trailing extension only.

    The whole string is matched, query included, so `.../skill.zip?dl=1` is
    not an archive while `.../download?file=skill.zip` is.
    """
    raw = str(source or "").strip()
    lower = raw.lower()
    if lower.endswith(".zip"):
        return ArchiveKind.ZIP
    if lower.endswith(".tar.gz") or lower.endswith(".tgz"):
        return ArchiveKind.TAR_GZ
    if lower.endswith(".tar"):
        return ArchiveKind.TAR
    return None


def check_content_type(kind: ArchiveKind, content_type: str | None) -> None:
    if content_type is None:
        return
    lowered = content_type.strip().lower()
    if any(lowered.startswith(item) for item in kind.content_types):
        return
    raise UnsupportedContentType(f"unsupported content-type for {kind.value} archive: {lowered}")


def sanitize_entry_path(name: str) -> PurePosixPath:
    """Normalize an archive member name into a relative path.

    `.` and empty components are dropped. Parent, root and drive-prefix
    components raise PathTraversal.
    """
    raw = str(name or "").replace("\\", "/")
    if raw.startswith("/"):
        raise PathTraversal(f"unsafe archive path: {name}")
    parts: list[str] = []
    for part in raw.split("/"):
        if part in {"", "."}:
            continue
        if part == "..":
            raise PathTraversal(f"unsafe archive path: {name}")
        if not parts and ":" in part:
            raise PathTraversal(f"unsafe archive path: {name}")
        parts.append(part)
    return PurePosixPath(*parts)


class EntryKind(Enum):
    FILE = "file"
    DIR = "dir"
    SYMLINK = "symlink"
    HARDLINK = "hardlink"
    OTHER = "other"


@dataclass(frozen=True)
class ArchiveEntry:
    path: str
    kind: EntryKind
    size: int
    open: Callable[[], IO[bytes]]


def _zip_entry_kind(info: zipfile.ZipInfo) -> EntryKind:
    if info.is_dir():
        return EntryKind.DIR
    # Unix mode lives in the high 16 bits; zero means no unix attributes.
    mode = (info.external_attr >> 16) & 0o170000
    if mode == stat.S_IFLNK:
        return EntryKind.SYMLINK
    if mode in (0, stat.S_IFREG):
        return EntryKind.FILE
    if mode == stat.S_IFDIR:
        return EntryKind.DIR
    return EntryKind.OTHER


def iter_zip_entries(archive_path: Path) -> Iterator[ArchiveEntry]:
    try:
        zf = zipfile.ZipFile(archive_path)
    except _READ_ERRORS as exc:
        raise ArchiveCorrupt(f"failed to read {archive_path.name}: {exc}") from exc
    with zf:
        for info in zf.infolist():
            yield ArchiveEntry(
                path=info.filename,
                kind=_zip_entry_kind(info),
                size=int(info.file_size or 0),
                open=lambda info=info: zf.open(info, "r"),
            )


def _tar_entry_kind(member: tarfile.TarInfo) -> EntryKind:
    if member.issym():
        return EntryKind.SYMLINK
    if member.islnk():
        return EntryKind.HARDLINK
    if member.isdir():
        return EntryKind.DIR
    if member.isreg():
        return EntryKind.FILE
    return EntryKind.OTHER


def _open_tar_member(tf: tarfile.TarFile, member: tarfile.TarInfo) -> IO[bytes]:
    handle = tf.extractfile(member)
    if handle is None:
        raise ArchiveCorrupt(f"cannot read tar member {member.name}")
    return handle


def iter_tar_entries(archive_path: Path, *, compressed: bool) -> Iterator[ArchiveEntry]:
    # Stream mode: members are read strictly in order, never seeked.
    mode = "r|gz" if compressed else "r|"
    try:
        tf = tarfile.open(archive_path, mode=mode)
    except _READ_ERRORS as exc:
        raise ArchiveCorrupt(f"failed to read {archive_path.name}: {exc}") from exc
    with tf:
        members = iter(tf)
        while True:
            try:
                member = next(members)
            except StopIteration:
                return
            except _READ_ERRORS as exc:
                raise ArchiveCorrupt(f"failed to read {archive_path.name}: {exc}") from exc
            yield ArchiveEntry(
                path=member.name,
                kind=_tar_entry_kind(member),
                size=int(member.size or 0),
                open=lambda member=member: _open_tar_member(tf, member),
            )


def iter_archive_entries(archive_path: Path, kind: ArchiveKind) -> Iterator[ArchiveEntry]:
    if kind is ArchiveKind.ZIP:
        return iter_zip_entries(archive_path)
    return iter_tar_entries(archive_path, compressed=kind is ArchiveKind.TAR_GZ)


def _ensure_within(root: Path, target: Path, name: str) -> None:
    try:
        target.resolve().relative_to(root)
    except ValueError as exc:
        raise PathTraversal(f"archive entry escapes extraction root: {name}") from exc


def extract_entries(
    entries: Iterable[ArchiveEntry],
    dest: Path,
    *,
    max_entries: int = MAX_ARCHIVE_ENTRIES,
    max_total_bytes: int = MAX_EXTRACTED_BYTES,
) -> int:
    """Materialize entries under dest and return the number of bytes written.

    Every check runs before any byte of the entry is written. The byte
    budget is shared by all entries and enforced per chunk.
    """
    dest = Path(dest)
    dest.mkdir(parents=True, exist_ok=True)
    root = dest.resolve()
    count = 0
    total = 0

    for entry in entries:
        count += 1
        if count > int(max_entries):
            raise TooManyEntries(f"archive has too many entries (limit {int(max_entries)})")

        rel = sanitize_entry_path(entry.path)
        if entry.kind in (EntryKind.SYMLINK, EntryKind.HARDLINK):
            raise UnsafeLinkEntry(f"archive contains {entry.kind.value}: {entry.path}")
        if entry.kind is EntryKind.OTHER:
            raise UnsupportedEntryType(f"archive contains unsupported entry type: {entry.path}")
        if not rel.parts:
            if entry.kind is EntryKind.DIR:
                continue
            raise ArchiveCorrupt(f"archive file entry has an empty path: {entry.path!r}")

        out_path = root.joinpath(*rel.parts)
        _ensure_within(root, out_path, entry.path)

        try:
            if entry.kind is EntryKind.DIR:
                out_path.mkdir(parents=True, exist_ok=True)
                continue

            if total + max(0, int(entry.size)) > int(max_total_bytes):
                raise ExtractedSizeExceeded(f"extracted data exceeds limit ({int(max_total_bytes)} bytes)")

            out_path.parent.mkdir(parents=True, exist_ok=True)
            logger.debug("extracting %s (%d bytes declared)", rel.as_posix(), int(entry.size))
            with entry.open() as src, out_path.open("wb") as dst:
                while True:
                    chunk = src.read(CHUNK_SIZE)
                    if not chunk:
                        break
                    total += len(chunk)
                    if total > int(max_total_bytes):
                        raise ExtractedSizeExceeded(f"extracted data exceeds limit ({int(max_total_bytes)} bytes)")
                    dst.write(chunk)
        except _READ_ERRORS as exc:
            raise ArchiveCorrupt(f"failed to extract {entry.path}: {exc}") from exc

    logger.info("extracted %d entries (%d bytes)", count, total)
    return total


def extract_archive(
    archive_path: Path,
    kind: ArchiveKind,
    dest: Path,
    *,
    max_entries: int = MAX_ARCHIVE_ENTRIES,
    max_total_bytes: int = MAX_EXTRACTED_BYTES,
) -> int:
    entries = iter_archive_entries(Path(archive_path), kind)
    try:
        return extract_entries(entries, dest, max_entries=max_entries, max_total_bytes=max_total_bytes)
    finally:
        entries.close()


def download_archive(
    url: str,
    dest: Path,
    kind: ArchiveKind,
    *,
    max_bytes: int = MAX_DOWNLOAD_BYTES,
    timeout_s: float | None = None,
) -> int:
    """Stream url into dest, enforcing the content-type gate and byte limit."""
    try:
        resp = requests.get(url, stream=True, timeout=timeout_s, allow_redirects=True)
    except requests.RequestException as exc:
        raise AcquisitionFailed(f"failed to download {url}: {exc}") from exc

    with resp:
        if int(resp.status_code) >= 400:
            raise AcquisitionFailed(f"failed to download {url}: HTTP {int(resp.status_code)} {resp.reason or ''}".rstrip())
        check_content_type(kind, resp.headers.get("Content-Type"))

        length = resp.headers.get("Content-Length")
        if length is not None:
            try:
                declared = int(length)
            except ValueError:
                declared = None
            if declared is not None and declared > int(max_bytes):
                raise AcquisitionFailed(f"download too large ({declared} bytes). Limit is {int(max_bytes)} bytes.")

        total = 0
        try:
            with Path(dest).open("wb") as handle:
                for chunk in resp.iter_content(chunk_size=CHUNK_SIZE):
                    if not chunk:
                        continue
                    total += len(chunk)
                    if total > int(max_bytes):
                        raise AcquisitionFailed(f"download exceeds limit ({int(max_bytes)} bytes)")
                    handle.write(chunk)
        except requests.RequestException as exc:
            raise AcquisitionFailed(f"failed to download {url}: {exc}") from exc

    logger.info("downloaded %s (%d bytes)", url, total)
    return total
