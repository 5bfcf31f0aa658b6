# Copyright © 2025 Sierra Labs LLC
# SPDX-License-Identifier: AGPL-3.0-only
# License-Filename: LICENSE

"""
Install Arden hooks into Claude Code's settings.json.

Registers `arden claude hook Stop` and `arden claude hook SubagentStop` so
Claude Code sends telemetry at the end of every turn. Existing hooks are
preserved; older Arden hook commands are replaced.
"""

import json
import os
import re
import shutil
import sys
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from ..errors import SettingsError

DEFAULT_SETTINGS_PATH = "~/.claude/settings.json"

INSTALLED_HOOKS = ("Stop", "SubagentStop")

# Commands written by earlier releases, before the `hook` subcommand existed
LEGACY_HOOK_PATTERNS = [
    re.compile(r"^arden.*claude\s+(Stop|SubagentStop)$"),
    re.compile(r"^npx arden.*claude\s+(Stop|SubagentStop)$"),
    re.compile(r"^bunx arden.*claude\s+(Stop|SubagentStop)$"),
]


def expand_tilde(path: str) -> Path:
    """Expand a leading ~ to the home directory."""
    return Path(path).expanduser()


def build_hook_command(hook: str, host: Optional[str] = None) -> str:
    """Command line Claude Code runs for a hook; an explicit host is baked in."""
    if host:
        return f"arden --host {host} claude hook {hook}"
    return f"arden claude hook {hook}"


def load_settings(settings_path: Path) -> Dict[str, Any]:
    """
    Load settings.json, returning an empty structure if it does not exist.

    Raises:
        SettingsError: If the file exists but is not a JSON object
    """
    if not settings_path.exists():
        return {}

    try:
        with open(settings_path, "r", encoding="utf-8") as f:
            content = f.read()
    except OSError as e:
        raise SettingsError(f"Could not read {settings_path}: {e}") from e

    if not content.strip():
        return {}

    try:
        settings = json.loads(content)
    except json.JSONDecodeError as e:
        raise SettingsError(f"{settings_path} is not valid JSON: {e}") from e

    if not isinstance(settings, dict):
        raise SettingsError(f"{settings_path} must contain a JSON object")

    return settings


def _is_legacy_command(command: Any) -> bool:
    return isinstance(command, str) and any(p.match(command) for p in LEGACY_HOOK_PATTERNS)


def filter_out_legacy_hooks(entries: List[Any]) -> List[Any]:
    """
    Remove earlier variants of Arden hooks to prevent duplicates.

    Handles both the legacy plain-string format and the current
    {"hooks": [{"type": "command", "command": ...}]} format.
    """
    cleaned = []
    for entry in entries:
        if isinstance(entry, str):
            if _is_legacy_command(entry):
                continue
        elif isinstance(entry, dict) and isinstance(entry.get("hooks"), list):
            if any(isinstance(h, dict) and _is_legacy_command(h.get("command")) for h in entry["hooks"]):
                continue
        cleaned.append(entry)
    return cleaned


def has_hook_command(entries: List[Any], command: str) -> bool:
    """Check if any matcher entry already runs this exact command."""
    for entry in entries:
        if isinstance(entry, dict) and isinstance(entry.get("hooks"), list):
            if any(isinstance(h, dict) and h.get("command") == command for h in entry["hooks"]):
                return True
    return False


def ensure_hooks(settings: Dict[str, Any], host: Optional[str] = None) -> Tuple[Dict[str, Any], bool]:
    """
    Merge Arden hooks into a settings dictionary.

    Args:
        settings: Parsed settings.json content (not modified)
        host: Host to bake into hook commands

    Returns:
        (new settings, whether anything changed)
    """
    updated = json.loads(json.dumps(settings))
    hooks = updated.get("hooks")
    if not isinstance(hooks, dict):
        hooks = {}
    updated["hooks"] = hooks

    modified = False
    for hook in INSTALLED_HOOKS:
        command = build_hook_command(hook, host)
        current = hooks.get(hook)
        current = current if isinstance(current, list) else []
        cleaned = filter_out_legacy_hooks(current)

        if not has_hook_command(cleaned, command):
            cleaned.append({"hooks": [{"type": "command", "command": command}]})
            modified = True
        elif len(cleaned) != len(current):
            modified = True

        hooks[hook] = cleaned

    return updated, modified


def write_file_atomic(path: Path, data: str) -> None:
    """Write to a temp file next to path, then rename over it."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_name(path.name + ".tmp")
    try:
        with open(tmp_path, "w", encoding="utf-8") as f:
            f.write(data)
        os.replace(tmp_path, path)
    except OSError:
        if tmp_path.exists():
            tmp_path.unlink()
        raise


def confirm(question: str, input_func: Callable[[str], str] = input) -> bool:
    """Ask a y/N question; anything but y/yes (or no input) declines."""
    try:
        answer = input_func(question + " ")
    except EOFError:
        return False
    return answer.strip().lower() in ("y", "yes")


def install_hooks(
    settings_path: Union[str, Path] = DEFAULT_SETTINGS_PATH,
    host: Optional[str] = None,
    yes: bool = False,
    dry_run: bool = False,
    backup: bool = True,
    input_func: Callable[[str], str] = input,
) -> int:
    """
    Install Arden hooks into a Claude Code settings file.

    Args:
        settings_path: Path to settings.json (~ is expanded)
        host: Host to bake into hook commands
        yes: Skip the confirmation prompt
        dry_run: Print the resulting settings instead of writing them
        backup: Copy the existing file to settings.json.backup first
        input_func: Prompt function (for tests)

    Returns:
        Process exit code
    """
    path = expand_tilde(str(settings_path))
    print(f"Configuring Claude Code hooks for: {path}")

    try:
        settings = load_settings(path)
    except SettingsError as e:
        print(f"❌ Failed to install Claude hooks: {e}", file=sys.stderr)
        return 1

    updated, modified = ensure_hooks(settings, host)

    if not modified:
        print("✅ Arden hooks already present – nothing to do.")
        return 0

    if dry_run:
        print("[DRY-RUN] New settings.json would be:")
        print(json.dumps(updated, indent=2))
        return 0

    if not yes and not confirm(f"Write changes to {path}? (y/N)", input_func):
        print("Aborted.")
        return 0

    try:
        if backup and path.exists():
            backup_file = path.with_name(path.name + ".backup")
            shutil.copy2(path, backup_file)
            print(f"   💾 Backed up to {backup_file}")

        write_file_atomic(path, json.dumps(updated, indent=2) + "\n")
    except OSError as e:
        print(f"❌ Failed to install Claude hooks: {e}", file=sys.stderr)
        return 1

    print(f"✅ Claude hooks installed in {path}")
    print(f"Claude Code will now send {' and '.join(INSTALLED_HOOKS)} events to Arden.")
    return 0
