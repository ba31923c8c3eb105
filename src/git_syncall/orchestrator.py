"""Applying one operation across every repository of the tree.

The orchestrator walks the manifest in file order. For each record it decides
whether the record is filtered out by its tag, skipped because a resumed run
has not reached it yet, then checkpoints it, checks that it exists locally and
hands it to the handler for the operation. VCS failures abort the run unless
the user asked to ignore them or the command tolerates them.
"""

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from functools import cached_property
from pathlib import Path
from typing import cast

from .config import Config, RunOptions
from .constants import APP_NAME, DEFAULT_PRIMARY_MIRROR
from .errors import (
    ConfigurationError,
    MissingRequiredRepository,
    OperationFailure,
    UnexpectedOutput,
)
from .git_wrapper import Git, parse_branch_name, parse_ls_remote_line
from .manifest import Manifest, RepositoryRecord
from .operations import (
    Command,
    CompareOperation,
    NewWorkdirOperation,
    Operation,
    RemoteOperation,
)
from .paths import resolve_address
from .remote import RemoteRoot, resolve_remote_root
from .resume import ResumeTracker
from .submodules import check_submodule, reconcile_submodules

logger = logging.getLogger(APP_NAME)


@dataclass(frozen=True)
class CompareResult:
    """Outcome of `compare` for one repository."""

    local_path: str
    branch: str
    same: bool


@dataclass
class RunReport:
    """What a run did.

    Attributes:
        processed (list[str]): Local paths that were dispatched.
        skipped (list[str]): Local paths skipped as absent or not applicable.
        failures (list[OperationFailure]): Failures downgraded to warnings.
        comparisons (list[CompareResult]): Results of `compare`.
    """

    processed: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    failures: list[OperationFailure] = field(default_factory=list)
    comparisons: list[CompareResult] = field(default_factory=list)


Handler = Callable[["Orchestrator", RepositoryRecord, Operation], None]


class Orchestrator:
    """Runs operations over the repositories of one tree.

    Attributes:
        root (Path): The tree root (the primary repository's working dir).
        manifest (Manifest): The repository list.
        options (RunOptions): Flags of this invocation.
        config (Config): Loaded settings.
        git (Git): The VCS capability.
        tracker (ResumeTracker): Checkpoint storage.
    """

    def __init__(
        self,
        root: Path,
        manifest: Manifest,
        options: RunOptions,
        config: Config | None = None,
        git: Git | None = None,
    ):
        self.root = root
        self.manifest = manifest
        self.options = options
        self.config = config or Config()
        self.git = git or Git()
        self.tracker = ResumeTracker(root / self.config.core.resume_file)
        self.report = RunReport()
        self._operation: Operation | None = None

    # --- Remote layout ---

    @cached_property
    def remote_root(self) -> RemoteRoot:
        """The remote tree root, resolved on first use and fixed for the run."""
        primary = self.manifest.primary
        mirror = primary.remote_path if primary else DEFAULT_PRIMARY_MIRROR
        return resolve_remote_root(
            self.git,
            self.root,
            self.options,
            mirror,
            self.config.core.remote_name,
        )

    def submodule_url(self, record: RepositoryRecord) -> str:
        """The URL `.gitmodules` records for a submodule."""
        key = f"submodule.{record.local_path}.url"
        if self.options.bare:
            args = ["--blob", "HEAD:.gitmodules", key]
        else:
            args = ["-f", ".gitmodules", key]
        return self.git.read_line(self.root, "config", args)

    def address_for(self, record: RepositoryRecord) -> str:
        """The remote address of `record` under the resolved layout."""
        remote = self.remote_root
        url = None
        if record.is_submodule and not remote.checked_out:
            url = self.submodule_url(record)
        return resolve_address(record, remote, url)

    # --- VCS calls ---

    def run_git(
        self,
        cwd: Path,
        subcommand: str,
        args: Sequence[str] = (),
        *,
        local_path: str = ".",
    ) -> bool:
        """Runs a side-effecting git command under the failure policy.

        Returns:
            bool: True if the command succeeded.

        Raises:
            OperationFailure: If it failed and failures are not being ignored.
        """
        cmd = [subcommand, *args]
        logger.info(f"== {local_path}: git {' '.join(cmd)}")
        status = self.git.run(cwd, subcommand, args)
        return self.check_status(local_path, cmd, status)

    def check_status(self, local_path: str, cmd: list[str], status: int) -> bool:
        if status == 0:
            return True
        failure = OperationFailure(local_path, cmd, status)
        tolerant = self._operation is not None and self._operation.tolerant
        if self.options.ignore_failures or tolerant:
            logger.warning(f"{failure}; continuing")
            self.report.failures.append(failure)
            return False
        raise failure

    def path_of(self, record: RepositoryRecord) -> Path:
        return self.root / record.local_path

    def is_present(self, record: RepositoryRecord) -> bool:
        path = self.path_of(record)
        if (path / ".git").exists():
            return True
        return self.options.bare and path.is_dir()

    # --- Iteration ---

    def run(self, operation: Operation) -> RunReport:
        """Applies `operation` to every included repository, in manifest order.

        Args:
            operation (Operation): The parsed operation.

        Returns:
            RunReport: What was processed, skipped, and tolerated.
        """
        self._operation = operation
        self.report = RunReport()
        signature = operation.signature
        enabled = self.options.enabled_tags
        included = [r for r in self.manifest.records if r.tag in enabled]

        resume_from = None
        if self.options.resume:
            resume_from = self.tracker.resume_point(signature)
            if resume_from and resume_from not in {r.local_path for r in included}:
                logger.warning(
                    f"Resume point {resume_from} is not in the selected "
                    "repositories; starting from the beginning."
                )
                resume_from = None

        for record in included:
            if resume_from is not None:
                if record.local_path != resume_from:
                    logger.debug(f"{record.local_path}: already done, skipping")
                    continue
                resume_from = None

            self.tracker.checkpoint(record.local_path, signature)
            self._process(record, operation)

        self._after(operation)
        self.tracker.clear()
        return self.report

    def _process(self, record: RepositoryRecord, operation: Operation) -> None:
        handler = HANDLERS[operation.command]
        if operation.command is not Command.GET and not self.is_present(record):
            if record.is_required:
                raise MissingRequiredRepository(record.local_path)
            logger.warning(f"{record.local_path} repo not present; skipping")
            self.report.skipped.append(record.local_path)
            return
        handler(self, record, operation)

    def _after(self, operation: Operation) -> None:
        """Submodule follow-up for the commands that move checkouts."""
        if operation.command not in (Command.GET, Command.PULL):
            return
        if self.options.bare:
            return
        paths = self.manifest.submodule_paths(self.options.enabled_tags)
        if not paths:
            return

        if operation.command is Command.GET:
            reconcile_submodules(
                self.git, self.root, self.remote_root, self._run_root, paths
            )
        else:
            self._run_root(self.root, "submodule", ["update", "--", *paths])

    def _run_root(self, cwd: Path, subcommand: str, args: Sequence[str]) -> None:
        self.run_git(cwd, subcommand, args)

    # --- get ---

    def configure_repository(self, record: RepositoryRecord) -> None:
        """Post-clone settings; safe to repeat."""
        path = self.path_of(record)
        local = record.local_path
        self.run_git(path, "config", ["core.ignorecase", "true"], local_path=local)

        autocrlf = self.git.read_line(path, "config", ["--get", "core.autocrlf"])
        if autocrlf == "true":
            self.run_git(path, "config", ["core.autocrlf", "false"], local_path=local)
            if not self.options.bare:
                self.run_git(path, "reset", ["--hard"], local_path=local)


def _mark(orchestrator: Orchestrator, record: RepositoryRecord) -> None:
    orchestrator.report.processed.append(record.local_path)


def _skip(orchestrator: Orchestrator, record: RepositoryRecord) -> None:
    orchestrator.report.skipped.append(record.local_path)


def _get(orch: Orchestrator, record: RepositoryRecord, op: Operation) -> None:
    if record.is_submodule:
        # Fetched by 'submodule update' once the loop is done.
        _skip(orch, record)
        return

    if orch.path_of(record).is_dir():
        if not record.is_primary:
            logger.warning(f"{record.local_path} already present; omitting")
        orch.configure_repository(record)
        _mark(orch, record)
        return

    args = [orch.address_for(record), record.local_path, *op.args]
    if orch.options.bare:
        args.append("--bare")
    if orch.run_git(orch.root, "clone", args, local_path=record.local_path):
        orch.configure_repository(record)
    _mark(orch, record)


def _passthrough(subcommand: str | None = None) -> Handler:
    """A handler running `git <subcommand> <args>` inside the repository."""

    def handler(orch: Orchestrator, record: RepositoryRecord, op: Operation) -> None:
        orch.run_git(
            orch.path_of(record),
            subcommand or op.command.value,
            op.args,
            local_path=record.local_path,
        )
        _mark(orch, record)

    return handler


def _new(orch: Orchestrator, record: RepositoryRecord, op: Operation) -> None:
    remote = orch.config.core.remote_name
    orch.run_git(
        orch.path_of(record), "log", [f"{remote}..", *op.args], local_path=record.local_path
    )
    _mark(orch, record)


def _push(orch: Orchestrator, record: RepositoryRecord, op: Operation) -> None:
    if record.is_submodule:
        _skip(orch, record)
        return
    _passthrough()(orch, record, op)


def _pull(orch: Orchestrator, record: RepositoryRecord, op: Operation) -> None:
    path = orch.path_of(record)
    if record.is_submodule:
        # 'submodule update' moves the checkout afterwards; only fetch here.
        args = [a for a in op.args if a != "--rebase"]
        orch.run_git(path, "fetch", args, local_path=record.local_path)
    else:
        orch.run_git(path, "pull", op.args, local_path=record.local_path)
    _mark(orch, record)


def _new_workdir(orch: Orchestrator, record: RepositoryRecord, op: Operation) -> None:
    op = cast(NewWorkdirOperation, op)
    helper = orch.config.core.new_workdir_helper
    target = str(op.target / record.local_path)
    args = [record.local_path, target, *op.extra]
    logger.info(f"== {record.local_path}: {helper} {' '.join(args)}")
    status = orch.git.exec_helper(orch.root, helper, args)
    orch.check_status(record.local_path, [helper, *args], status)
    _mark(orch, record)


def _remote(orch: Orchestrator, record: RepositoryRecord, op: Operation) -> None:
    op = cast(RemoteOperation, op)
    args = [op.subcommand, op.name]
    if op.needs_address:
        args.append(orch.address_for(record))
    args.extend(op.extra)
    orch.run_git(orch.path_of(record), "remote", args, local_path=record.local_path)
    _mark(orch, record)


def _compare_target(orch: Orchestrator, record: RepositoryRecord, op: CompareOperation) -> str:
    if op.base is not None:
        return f"{op.base}/{record.local_path}"
    if op.target_dir is not None:
        return str(orch.root / op.target_dir / record.local_path)
    return orch.address_for(record)


def _compare(orch: Orchestrator, record: RepositoryRecord, op: Operation) -> None:
    op = cast(CompareOperation, op)
    if record.is_submodule:
        # Submodules sit on detached heads; there is no branch to compare.
        _skip(orch, record)
        return

    path = orch.path_of(record)
    try:
        branch = parse_branch_name(
            orch.git.read_line(path, "rev-parse", ["--abbrev-ref", "HEAD"])
        )
    except UnexpectedOutput as e:
        raise ConfigurationError(f"{record.local_path}: {e}") from e

    ref = f"refs/heads/{branch}"
    target = _compare_target(orch, record, op)
    ours = parse_ls_remote_line(
        orch.git.read_line(orch.root, "ls-remote", [str(path), ref]),
        f"commit of mine in {record.local_path}",
    )
    theirs = parse_ls_remote_line(
        orch.git.read_line(orch.root, "ls-remote", [target, ref]),
        f"commit of theirs at {target}",
    )

    same = ours == theirs
    if not same:
        logger.info(f"{record.local_path} differs")
    orch.report.comparisons.append(CompareResult(record.local_path, branch, same))
    _mark(orch, record)


def _check_submodules(orch: Orchestrator, record: RepositoryRecord, op: Operation) -> None:
    if not record.is_submodule:
        return
    check_submodule(orch.git, orch.path_of(record), record.local_path)
    _mark(orch, record)


HANDLERS: dict[Command, Handler] = {
    Command.GET: _get,
    Command.STATUS: _passthrough(),
    Command.COMMIT: _passthrough(),
    Command.PUSH: _push,
    Command.PULL: _pull,
    Command.FETCH: _passthrough(),
    Command.LOG: _passthrough(),
    Command.NEW: _new,
    Command.NEW_WORKDIR: _new_workdir,
    Command.SEND: _passthrough("send-email"),
    Command.CHECKOUT: _passthrough(),
    Command.GREP: _passthrough(),
    Command.DIFF: _passthrough(),
    Command.CLEAN: _passthrough(),
    Command.RESET: _passthrough(),
    Command.BRANCH: _passthrough(),
    Command.CONFIG: _passthrough(),
    Command.REPACK: _passthrough(),
    Command.FORMAT_PATCH: _passthrough(),
    Command.GC: _passthrough(),
    Command.TAG: _passthrough(),
    Command.REMOTE: _remote,
    Command.COMPARE: _compare,
    Command.CHECK_SUBMODULES: _check_submodules,
}
