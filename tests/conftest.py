"""Shared fixtures: a fake git capability and helpers to lay out a tree."""

import logging
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock

import pytest

from git_syncall.config import Config
from git_syncall.constants import APP_NAME
from git_syncall.manifest import Manifest, parse_manifest


class FakeGit:
    """Records git invocations instead of running them.

    Attributes:
        calls (list[tuple[Path, str, tuple[str, ...]]]): Side-effecting calls.
        helper_calls (list[tuple[Path, str, tuple[str, ...]]]): Helper scripts run.
        outputs (dict): Read results keyed by (cwd, subcommand, args) or
            (subcommand, args).
        statuses (dict): Exit statuses keyed by (cwd, subcommand).
        on_run (Callable | None): Called for every side-effecting call.
    """

    def __init__(self) -> None:
        self.calls: list[tuple[Path, str, tuple[str, ...]]] = []
        self.helper_calls: list[tuple[Path, str, tuple[str, ...]]] = []
        self.reads: list[tuple[Path, str, tuple[str, ...]]] = []
        self.outputs: dict[tuple, str] = {}
        self.statuses: dict[tuple[Path, str], int] = {}
        self.on_run: Callable[[Path, str, tuple[str, ...]], None] | None = None

    def run(self, cwd: Path, subcommand: str, args: Sequence[str] = ()) -> int:
        args = tuple(args)
        self.calls.append((Path(cwd), subcommand, args))
        if self.on_run:
            self.on_run(Path(cwd), subcommand, args)
        return self.statuses.get((Path(cwd), subcommand), 0)

    def exec_helper(self, cwd: Path, helper: str, args: Sequence[str] = ()) -> int:
        self.helper_calls.append((Path(cwd), helper, tuple(args)))
        return self.statuses.get((Path(cwd), helper), 0)

    def read_output(self, cwd: Path, subcommand: str, args: Sequence[str] = ()) -> str:
        args = tuple(args)
        self.reads.append((Path(cwd), subcommand, args))
        key = (Path(cwd), subcommand, args)
        if key in self.outputs:
            return self.outputs[key]
        return self.outputs.get((subcommand, args), "")

    def read_line(self, cwd: Path, subcommand: str, args: Sequence[str] = ()) -> str:
        output = self.read_output(cwd, subcommand, args)
        return output.splitlines()[0].strip() if output else ""

    def commands(self, subcommand: str | None = None) -> list[tuple[Path, str, tuple[str, ...]]]:
        """Side-effecting calls, optionally only those of one subcommand."""
        return [c for c in self.calls if subcommand is None or c[1] == subcommand]

    def dirs(self, subcommand: str) -> list[Path]:
        """Working directories of every call of `subcommand`, in order."""
        return [c[0] for c in self.commands(subcommand)]


@pytest.fixture
def fake_git() -> FakeGit:
    return FakeGit()


@pytest.fixture(autouse=True)
def isolated_config(tmp_path_factory: pytest.TempPathFactory, mocker: MagicMock) -> Any:
    """Keeps tests away from the user's config file and run log."""
    home = tmp_path_factory.mktemp("home")
    mocker.patch("git_syncall.config.CONFIG_FILE", home / "config.toml")
    mocker.patch("git_syncall.cli.LOG_FILE", home / "sync.log")
    Config._global_cache = None
    yield
    Config._global_cache = None

    logger = logging.getLogger(APP_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(logging.NOTSET)


def write_tree(root: Path, manifest_text: str, present: Sequence[str] = ()) -> Manifest:
    """Writes `packages.conf` under `root` and creates the `present` repos."""
    (root / "packages.conf").write_text(manifest_text)
    for local_path in present:
        (root / local_path / ".git").mkdir(parents=True, exist_ok=True)
    return parse_manifest(manifest_text.splitlines(), source="packages.conf")
