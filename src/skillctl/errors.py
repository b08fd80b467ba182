from __future__ import annotations

from typing import TYPE_CHECKING, Sequence

if TYPE_CHECKING:
    from .report import Report, ScanReport


class SkillError(Exception):
    """Base class for every failure the ingestion pipeline reports."""

    code = "skill_error"

    def to_dict(self) -> dict:
        return {"ok": False, "error": self.code, "details": str(self)}


class ConfigError(SkillError):
    code = "config_invalid"


# Acquisition


class AcquisitionFailed(SkillError):
    code = "acquisition_failed"


class SourceNotFound(AcquisitionFailed):
    code = "source_not_found"


# Extraction. The temp directory is discarded whenever one of these escapes.


class ExtractionError(SkillError):
    code = "extraction_failed"


class PathTraversal(ExtractionError):
    code = "path_traversal"


class UnsafeLinkEntry(ExtractionError):
    code = "unsafe_link_entry"


class UnsupportedEntryType(ExtractionError):
    code = "unsupported_entry_type"


class TooManyEntries(ExtractionError):
    code = "too_many_entries"


class ExtractedSizeExceeded(ExtractionError):
    code = "extracted_size_exceeded"


class UnsupportedContentType(ExtractionError):
    code = "unsupported_content_type"


class ArchiveCorrupt(ExtractionError):
    code = "archive_corrupt"


# Skill root location


class SkillRootError(SkillError):
    code = "skill_root_error"


class NoSkillFound(SkillRootError):
    code = "no_skill_found"


class AmbiguousSkillArchive(SkillRootError):
    code = "ambiguous_skill_archive"


class SkillPathInvalid(SkillRootError):
    code = "skill_path_invalid"


class InvalidFrontmatter(SkillError):
    code = "invalid_frontmatter"


class ExternalScanLaunchFailed(SkillError):
    code = "external_scan_launch_failed"

    def __init__(self, message: str, *, tools: Sequence[str] = (), report: "ScanReport | None" = None):
        super().__init__(message)
        self.tools = tuple(tools)
        self.report = report

    def to_dict(self) -> dict:
        payload = super().to_dict()
        payload["tools"] = list(self.tools)
        if self.report is not None:
            payload["scan"] = self.report.to_dict()
        return payload


# Gates consumed by the add pipeline


class ValidationFailed(SkillError):
    code = "validation_failed"

    def __init__(self, report: "Report"):
        super().__init__("validation failed")
        self.report = report

    def to_dict(self) -> dict:
        payload = super().to_dict()
        payload["validation"] = self.report.to_dict()
        return payload


class ScanFailed(SkillError):
    code = "scan_failed"

    def __init__(self, report: "ScanReport"):
        super().__init__("security scan failed")
        self.report = report

    def to_dict(self) -> dict:
        payload = super().to_dict()
        payload["scan"] = self.report.to_dict()
        return payload


class InstallError(SkillError):
    code = "install_failed"


class SkillAlreadyInstalled(InstallError):
    code = "skill_already_installed"
