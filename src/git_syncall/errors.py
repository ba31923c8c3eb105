"""Exception taxonomy for git-syncall.

Everything the engine raises on purpose derives from `SyncError`, so the CLI
can report it as a single red line instead of a traceback. Broken or ambiguous
configuration is always fatal; only `OperationFailure` may be downgraded to a
warning by the orchestrator.
"""

from pathlib import Path


class SyncError(Exception):
    """Base class for all git-syncall errors."""


class UsageError(SyncError):
    """Invalid command, command arguments, or selection flags."""


class FormatError(SyncError):
    """A manifest line does not have the expected shape."""

    def __init__(self, source: str, line_number: int, line: str, reason: str = ""):
        self.source = source
        self.line_number = line_number
        self.line = line
        detail = reason or "expected 4 fields: localpath tag remotepath upstream"
        super().__init__(f"{source}:{line_number}: {detail}: {line.strip()!r}")


class ManifestNotFound(SyncError):
    """None of the candidate manifest files exist."""

    def __init__(self, root: Path, candidates: tuple[str, ...] | list[str]):
        self.root = root
        self.candidates = tuple(candidates)
        names = " or ".join(self.candidates)
        super().__init__(f"Can't find a manifest ({names}) in {root}")


class ConfigurationError(SyncError):
    """The remote layout, branch, or remote could not be determined."""


class UnexpectedOutput(SyncError):
    """Output of a VCS read call did not match the expected pattern."""


class MissingRequiredRepository(SyncError):
    """An always-included repository is absent from the local tree."""

    def __init__(self, local_path: str):
        self.local_path = local_path
        super().__init__(
            f"Required repo {local_path} is missing. "
            "Please first run 'git-syncall get'."
        )


class OperationFailure(SyncError):
    """A side-effecting VCS invocation returned a non-zero status."""

    def __init__(self, local_path: str, command: list[str], status: int):
        self.local_path = local_path
        self.command = command
        self.status = status
        super().__init__(
            f"git {' '.join(command)} failed in {local_path} (exit status {status})"
        )


class SubmoduleDriftError(SyncError):
    """A submodule is checked out at a commit no remote branch contains."""

    def __init__(self, local_path: str, commit: str):
        self.local_path = local_path
        self.commit = commit
        super().__init__(
            f"Submodule {local_path} is at commit {commit}, which is not on any "
            "remote branch. Push that commit upstream (or check out a pushed "
            "commit and update the pin) before syncing."
        )
