"""
Configuration management for session-journal.

Settings come from three places, later ones winning:
1. Built-in defaults (DEFAULT_CONFIG)
2. ~/.claude/session-journal-config.json
3. SESSION_JOURNAL_* environment variables (a .env file in the working
   directory is loaded first)
"""

from __future__ import annotations

import json
import os
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

CONFIG_PATH = Path.home() / ".claude" / "session-journal-config.json"

ENV_CONTEXT_DIR = "SESSION_JOURNAL_CONTEXT_DIR"
ENV_STORAGE_ROOTS = "SESSION_JOURNAL_STORAGE_ROOTS"

DEFAULT_CONFIG: dict[str, Any] = {
    "context_dir": ".context",
    "journal_dir_name": "journal",
    "state_file": ".state.json",
    "storage_roots": ["~/.claude/projects"],
    "max_messages_per_part": 200,
    "details_threshold": 10,
    "peek_lines": 50,
}


def _filter_dataclass_fields(data: dict[str, Any], cls: type) -> dict[str, Any]:
    """Filter dict to only include fields that exist in the dataclass."""
    valid_fields = {f.name for f in fields(cls)}
    return {k: v for k, v in data.items() if k in valid_fields}


def _load_env_file(cwd: Path | None = None) -> None:
    env_file = (cwd or Path.cwd()) / ".env"
    if env_file.exists():
        load_dotenv(env_file)


@dataclass
class JournalConfig:
    """
    User configuration for journal export.

    Attributes:
        context_dir: Project-relative directory holding the journal
        journal_dir_name: Name of the journal directory inside context_dir
        state_file: Name of the state file inside the journal directory
        storage_roots: Directories scanned for transcript files
        max_messages_per_part: Page size for multi-part journal entries
        details_threshold: Tool output line count above which output is collapsed
        peek_lines: Lines probed when deciding whether a parser accepts a file
    """

    context_dir: str = ".context"
    journal_dir_name: str = "journal"
    state_file: str = ".state.json"
    storage_roots: list[str] = field(default_factory=lambda: ["~/.claude/projects"])
    max_messages_per_part: int = 200
    details_threshold: int = 10
    peek_lines: int = 50

    @classmethod
    def load(cls, path: Path | None = None, use_env: bool = True) -> "JournalConfig":
        """
        Load config from file with defaults and environment overrides.

        Args:
            path: Optional config file path. Defaults to ~/.claude/session-journal-config.json
            use_env: Apply SESSION_JOURNAL_* overrides (and load ./.env)

        Returns:
            JournalConfig instance with user settings merged with defaults
        """
        if path is None:
            path = CONFIG_PATH

        config = dict(DEFAULT_CONFIG)
        config["storage_roots"] = list(DEFAULT_CONFIG["storage_roots"])

        if path.exists():
            try:
                user_config = json.loads(path.read_text())
                if isinstance(user_config, dict):
                    config.update(user_config)
            except (json.JSONDecodeError, OSError):
                # Use defaults on error
                pass

        if use_env:
            _load_env_file()
            context_dir = os.getenv(ENV_CONTEXT_DIR)
            if context_dir:
                config["context_dir"] = context_dir
            roots = os.getenv(ENV_STORAGE_ROOTS)
            if roots:
                config["storage_roots"] = [r for r in roots.split(os.pathsep) if r]

        return cls(**_filter_dataclass_fields(config, cls))

    def save(self, path: Path | None = None) -> None:
        """Save configuration to file."""
        if path is None:
            path = CONFIG_PATH

        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, "w") as f:
            json.dump(asdict(self), f, indent=2)

    def journal_dir(self, base: Path | None = None) -> Path:
        """Resolve the journal directory relative to base (default: cwd)."""
        context = Path(self.context_dir).expanduser()
        if not context.is_absolute():
            context = (base or Path.cwd()) / context
        return context / self.journal_dir_name

    def resolved_storage_roots(self) -> list[Path]:
        """Storage roots with ~ expanded."""
        return [Path(root).expanduser() for root in self.storage_roots]


# Default configuration instance
default_config = JournalConfig()


__all__ = [
    "CONFIG_PATH",
    "DEFAULT_CONFIG",
    "ENV_CONTEXT_DIR",
    "ENV_STORAGE_ROOTS",
    "JournalConfig",
    "default_config",
]
