import logging
import re
import tomllib
from dataclasses import dataclass, field, replace
from enum import IntEnum
from pathlib import Path
from typing import Any

from .constants import (
    APP_NAME,
    CONFIG_FILE,
    DEFAULT_REMOTE,
    LOCAL_CONFIG_FILE,
    MANIFEST_FILES,
    NEW_WORKDIR_HELPER,
    RESUME_FILE,
)

logger = logging.getLogger(APP_NAME)


def parse_size(value: int | str) -> int:
    """Converts human-readable size strings (e.g., '100MB') to bytes."""
    if isinstance(value, int):
        return value
    match = re.match(r"^(\d+(?:\.\d+)?)\s*([kmg]b?)$", str(value).strip().lower())
    if not match:
        raise ValueError(f"Invalid size format '{value}'")
    num, unit = float(match.group(1)), match.group(2)
    multiplier = {
        "k": 1024,
        "kb": 1024,
        "m": 1024**2,
        "mb": 1024**2,
        "g": 1024**3,
        "gb": 1024**3,
    }
    return int(num * multiplier[unit])


@dataclass
class CoreConfig:
    """Core settings of a synchronized tree.

    Attributes:
        remote_name (str): Remote used when the current branch tracks none.
        manifest_files (list[str]): Manifest file names, tried in order.
        resume_file (str): Checkpoint file name, relative to the tree root.
        new_workdir_helper (str): Executable used by `new-workdir`.
    """

    remote_name: str = DEFAULT_REMOTE
    manifest_files: list[str] = field(default_factory=lambda: list(MANIFEST_FILES))
    resume_file: str = RESUME_FILE
    new_workdir_helper: str = NEW_WORKDIR_HELPER


@dataclass
class TagsConfig:
    """Default tag selection, applied before command-line toggles.

    Attributes:
        enable (list[str]): Tags switched on for every run.
        disable (list[str]): Tags switched off for every run.
    """

    enable: list[str] = field(default_factory=list)
    disable: list[str] = field(default_factory=list)


@dataclass
class LimitsConfig:
    """Resource limitation settings.

    Attributes:
        max_log_size (int): Max bytes for the run log before rotation.
    """

    max_log_size: int = 1024 * 1024


@dataclass
class Config:
    """Global configuration aggregator.

    Attributes:
        core (CoreConfig): Core settings.
        tags (TagsConfig): Default tag selection.
        limits (LimitsConfig): Resource limits.
    """

    core: CoreConfig = field(default_factory=CoreConfig)
    tags: TagsConfig = field(default_factory=TagsConfig)
    limits: LimitsConfig = field(default_factory=LimitsConfig)

    # Cache for the base global configuration
    _global_cache: "Config | None" = None

    @classmethod
    def load(cls, root: Path | None = None) -> "Config":
        """Loads and merges configuration from defaults, global, and tree sources.

        Args:
            root (Path | None): The tree root to search for local config.

        Returns:
            Config: The fully merged configuration object.
        """
        # 1. Load or Retrieve Global Config
        if cls._global_cache is None:
            instance = cls()
            if CONFIG_FILE.exists():
                instance._merge_from_file(CONFIG_FILE)
            cls._global_cache = instance

        # Copy the nested sections too; merges below must not leak into the cache.
        cached = cls._global_cache
        instance = replace(
            cached,
            core=replace(cached.core, manifest_files=list(cached.core.manifest_files)),
            tags=replace(
                cached.tags,
                enable=list(cached.tags.enable),
                disable=list(cached.tags.disable),
            ),
            limits=replace(cached.limits),
        )

        # 2. Load Tree Config (if applicable)
        if root:
            local_toml = root / LOCAL_CONFIG_FILE
            pyproject = root / "pyproject.toml"

            if local_toml.exists():
                instance._merge_from_file(local_toml)
            elif pyproject.exists():
                instance._merge_from_file(pyproject, section="tool.syncall")

        return instance

    def _merge_from_file(self, path: Path, section: str | None = None) -> None:
        """Parses a TOML file and merges it into the current instance.

        Args:
            path (Path): Path to the TOML file.
            section (str | None): Dot-separated section path (e.g., 'tool.syncall').
        """
        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)

            if section:
                for key in section.split("."):
                    data = data.get(key, {})

            if not data:
                return

            if "core" in data:
                self.core = self._update_dataclass("core", self.core, data["core"])
            if "limits" in data:
                self.limits = self._update_dataclass(
                    "limits", self.limits, data["limits"]
                )
            if "tags" in data:
                # Tag lists accumulate across layers instead of replacing.
                updates = self._update_dataclass("tags", TagsConfig(), data["tags"])
                for tag in updates.enable:
                    if tag in self.tags.disable:
                        self.tags.disable.remove(tag)
                    if tag not in self.tags.enable:
                        self.tags.enable.append(tag)
                for tag in updates.disable:
                    if tag in self.tags.enable:
                        self.tags.enable.remove(tag)
                    if tag not in self.tags.disable:
                        self.tags.disable.append(tag)

        except tomllib.TOMLDecodeError as e:
            logger.error(f"Config syntax error in {path}: {e}")
        except Exception as e:
            logger.warning(f"Failed to load config from {path}: {e}")

    @staticmethod
    def _update_dataclass(section_name: str, instance: Any, updates: dict) -> Any:
        """Updates a dataclass, warning on invalid keys and parsing sizes."""
        valid_keys = instance.__dataclass_fields__.keys()
        filtered_updates = {}

        invalid_keys = set(updates.keys()) - set(valid_keys)
        if invalid_keys:
            logger.warning(
                f"Unknown config keys in [{section_name}]: {', '.join(sorted(invalid_keys))}. Ignoring."
            )

        for k, v in updates.items():
            if k not in valid_keys:
                continue

            try:
                if k == "max_log_size":
                    filtered_updates[k] = parse_size(v)
                elif k in ["manifest_files", "enable", "disable"]:
                    if isinstance(v, str) or not all(isinstance(i, str) for i in v):
                        raise ValueError(f"Expected a list of strings, got {v!r}")
                    filtered_updates[k] = list(v)
                else:
                    filtered_updates[k] = v
            except (TypeError, ValueError) as e:
                logger.warning(
                    f"Config error in [{section_name}].{k}: {e}. Falling back to default."
                )

        return replace(instance, **filtered_updates)


class Verbosity(IntEnum):
    """How much a run reports."""

    SILENT = 0
    QUIET = 1
    NORMAL = 2
    VERBOSE = 3


@dataclass(frozen=True)
class RunOptions:
    """Everything a single invocation was asked to do, fixed before it starts.

    Built once from the command-line flags and the loaded `Config`, then handed
    to every component. Nothing mutates it during a run.

    Attributes:
        enabled_tags (frozenset[str]): Tags whose repositories are included.
        verbosity (Verbosity): Reporting level.
        resume (bool): Continue from the checkpoint of an identical command.
        ignore_failures (bool): Downgrade failing VCS calls to warnings.
        root_override (str | None): Explicit remote tree root.
        checked_out (bool): The remote root is a checked-out tree.
        bare (bool): The local tree holds bare repositories.
    """

    enabled_tags: frozenset[str] = frozenset()
    verbosity: Verbosity = Verbosity.NORMAL
    resume: bool = False
    ignore_failures: bool = False
    root_override: str | None = None
    checked_out: bool = False
    bare: bool = False
