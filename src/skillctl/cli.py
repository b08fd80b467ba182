from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

from .config import AppPaths, Assistant, Config, SkillsConfig
from .errors import ConfigError, ExternalScanLaunchFailed, SkillError
from .installer import AddResult, add_skill
from .logging import get_logger
from .scanner import probe_external_scanners, scan_path
from .schema import validate_skill_dir

logger = get_logger(__name__)


def _print_json(payload: object) -> None:
    print(json.dumps(payload, ensure_ascii=True))


def _fail(payload: dict) -> None:
    _print_json(payload)
    sys.exit(1)


def _selected_assistant(args: argparse.Namespace) -> Assistant | None:
    raw = getattr(args, "assistant", None)
    return Assistant.parse(raw) if raw else None


def resolve_single_assistant(args: argparse.Namespace, config: Config, command: str) -> Assistant:
    selected = _selected_assistant(args)
    if selected is not None:
        return selected
    if config.default_assistant is not None:
        logger.warning(
            "using default assistant %s for %s. Use --codex/--claudecode/--opencode to override.",
            config.default_assistant,
            command,
        )
        return config.default_assistant
    raise ConfigError("no assistant selected. Set default_assistant in config.yaml or pass --codex/--claudecode/--opencode.")


def _confirm(result: AddResult) -> bool:
    name = result.manifest.name if result.manifest else "skill"
    sys.stderr.write("Warning: Skill usage is at your own risk. Verify and trust the source before installing.\n")
    sys.stderr.write(f"Install {name}? [y/N]: ")
    sys.stderr.flush()
    answer = sys.stdin.readline().strip().lower()
    return answer in {"y", "yes"}


def cmd_add(args: argparse.Namespace) -> None:
    paths = AppPaths.from_env()
    try:
        config = Config.load(paths)
        assistant = resolve_single_assistant(args, config, "add")
        dest_root = config.skills_root_for(paths, assistant)
        result = add_skill(
            str(args.source),
            dest_root,
            skill=str(args.skill).strip() if args.skill else None,
            config=SkillsConfig.from_env(),
            confirm=None if args.yes else _confirm,
        )
    except SkillError as exc:
        _fail(exc.to_dict())
        return
    payload = result.to_dict()
    payload["assistant"] = assistant.value
    if result.cancelled:
        payload["error"] = "installation_cancelled"
        _fail(payload)
        return
    _print_json(payload)


def cmd_validate(args: argparse.Namespace) -> None:
    report, manifest = validate_skill_dir(Path(str(args.path)))
    payload = report.to_dict()
    payload["skill"] = manifest.to_public_dict() if manifest else None
    if report.has_errors():
        _fail(payload)
        return
    _print_json(payload)


def cmd_scan(args: argparse.Namespace) -> None:
    path = Path(str(args.path))
    if not path.exists():
        _fail({"ok": False, "error": "path_not_found", "details": str(path)})
        return
    cfg = SkillsConfig.from_env()
    scanners = [] if cfg.skip_external_scans else probe_external_scanners()
    try:
        report = scan_path(path, scanners=scanners)
    except ExternalScanLaunchFailed as exc:
        _fail(exc.to_dict())
        return
    if report.has_errors():
        _fail(report.to_dict())
        return
    _print_json(report.to_dict())


def cmd_paths(args: argparse.Namespace) -> None:
    paths = AppPaths.from_env()
    try:
        config = Config.load(paths)
        selected = _selected_assistant(args)
    except ConfigError as exc:
        _fail(exc.to_dict())
        return
    assistants = [selected] if selected else list(Assistant)
    _print_json(
        {
            "ok": True,
            "config_file": str(paths.config_file),
            "default_assistant": config.default_assistant.value if config.default_assistant else None,
            "skills_roots": {a.value: str(config.skills_root_for(paths, a)) for a in assistants},
        }
    )


def _add_assistant_flags(parser: argparse.ArgumentParser) -> None:
    group = parser.add_mutually_exclusive_group()
    for assistant in Assistant:
        group.add_argument(f"--{assistant.value}", dest="assistant", action="store_const", const=assistant.value)
    parser.set_defaults(assistant=None)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="skillctl", description="Fetch, validate, scan and install agent skills")
    parser.add_argument("--log-level", default=None)
    sub = parser.add_subparsers(dest="command")

    add = sub.add_parser("add")
    add.add_argument("source")
    add.add_argument("--skill", default=None, help="skill sub-path inside the source")
    add.add_argument("--yes", action="store_true", help="skip the confirmation prompt")
    _add_assistant_flags(add)
    add.set_defaults(func=cmd_add)

    val = sub.add_parser("validate")
    val.add_argument("path")
    val.set_defaults(func=cmd_validate)

    scan = sub.add_parser("scan")
    scan.add_argument("path")
    scan.set_defaults(func=cmd_scan)

    paths = sub.add_parser("paths")
    _add_assistant_flags(paths)
    paths.set_defaults(func=cmd_paths)

    return parser
