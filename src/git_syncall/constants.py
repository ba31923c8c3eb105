import os
from pathlib import Path

"""Global constants and path definitions for git-syncall.

This module defines the application identity, the well-known file names that
live in a synchronized tree, the manifest sentinels, and the XDG locations used
for the user's configuration and the run log.
"""

# --- Identity ---
APP_NAME = "git-syncall"
"""str: The human-readable application name (also the logger name)."""

# --- Tree files ---
MANIFEST_FILES = ("packages.conf", "packages")
"""tuple[str, ...]: Manifest file names tried in order of preference."""

RESUME_FILE = "resume"
"""str: Name of the checkpoint file written in the tree root."""

LOCAL_CONFIG_FILE = "syncall.toml"
"""str: Per-tree configuration file name."""

# --- Manifest sentinels ---
ALWAYS_TAG = "-"
"""str: Tag of repositories that are always included and must be present."""

SUBMODULE_MARKER = "-"
"""str: Remote path value marking a repository as a submodule."""

PRIMARY_PATH = "."
"""str: Local path of the primary repository (the tree root itself)."""

PLATFORM_TAG = "windows"
"""str: Tag enabled by default only on Windows hosts."""

# --- Git / Logic Constants ---
DEFAULT_REMOTE = "origin"
"""str: Remote name used when the current branch has none configured."""

DEFAULT_PRIMARY_MIRROR = "ghc.git"
"""str: Bare mirror directory of the primary repo when the manifest names none."""

NEW_WORKDIR_HELPER = "git-new-workdir"
"""str: External helper that creates linked working directories."""

HOSTING_PROVIDER_PATTERN = r"(git@|git://|https://)github\.com"
"""str: Remote roots matching this pattern get nested paths flattened."""

# --- Paths ---
_XDG_STATE = os.environ.get("XDG_STATE_HOME")
_BASE_STATE = Path(_XDG_STATE) if _XDG_STATE else Path.home() / ".local/state"

STATE_DIR = _BASE_STATE / "git-syncall"
"""Path: The directory for runtime state data (the run log)."""

LOG_FILE = STATE_DIR / "sync.log"
"""Path: The rotating log of every run."""

CONFIG_DIR: Path = Path.home() / ".config/git-syncall"
"""Path: The directory for user configuration files."""

CONFIG_FILE: Path = CONFIG_DIR / "config.toml"
"""Path: The global configuration file path."""
