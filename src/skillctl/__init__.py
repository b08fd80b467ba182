"""Untrusted skill ingestion for AI coding assistants.

A skill is a directory with a SKILL.md manifest. Sources may be a local
directory, a git remote, or an archive URL; each is acquired into a
throwaway tree, checked, and only then copied into an assistant's skill root.

Security model:
- Archives are unpacked under hard limits; links and escaping paths abort.
- Manifest errors and detected secrets block installation; warnings do not.
- Optional host scanners (trivy, clamscan) are invoked when present.
"""

__version__ = "0.1.0"
