"""git-syncall: run one git operation across a tree of many repositories.

This package provides the manifest loader, the remote layout resolution, the
resumable orchestrator that applies an operation to every selected repository,
and the command-line interface around them.
"""

from . import (
    cli,
    config,
    constants,
    errors,
    git_wrapper,
    manifest,
    operations,
    orchestrator,
    paths,
    remote,
    resume,
    submodules,
)

__all__ = [
    "cli",
    "config",
    "constants",
    "errors",
    "git_wrapper",
    "manifest",
    "operations",
    "orchestrator",
    "paths",
    "remote",
    "resume",
    "submodules",
]
