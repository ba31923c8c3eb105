import subprocess
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from git_syncall.errors import UnexpectedOutput
from git_syncall.git_wrapper import (
    Git,
    parse_branch_name,
    parse_commit_hash,
    parse_ls_remote_line,
    parse_remote_name,
)


def test_run_passes_cwd_and_returns_status(mocker: MagicMock, tmp_path: Path) -> None:
    """Verifies commands run in the given directory without changing ours."""
    mock_run = mocker.patch(
        "subprocess.run", return_value=subprocess.CompletedProcess([], 1)
    )

    status = Git().run(tmp_path, "pull", ["--rebase"])

    assert status == 1
    mock_run.assert_called_once_with(["git", "pull", "--rebase"], cwd=tmp_path)


def test_run_reports_unstartable_git(
    mocker: MagicMock, caplog: pytest.LogCaptureFixture, tmp_path: Path
) -> None:
    mocker.patch("subprocess.run", side_effect=FileNotFoundError("git"))

    assert Git("no-such-git").run(tmp_path, "status") == 127
    assert "Could not run no-such-git status" in caplog.text


def test_exec_helper(mocker: MagicMock, tmp_path: Path) -> None:
    mock_run = mocker.patch(
        "subprocess.run", return_value=subprocess.CompletedProcess([], 0)
    )

    assert Git().exec_helper(tmp_path, "git-new-workdir", ["a", "/w/a"]) == 0
    mock_run.assert_called_once_with(["git-new-workdir", "a", "/w/a"], cwd=tmp_path)


def test_read_output_tolerates_non_zero_exit(mocker: MagicMock, tmp_path: Path) -> None:
    """Verifies 'not set' from git config reads as empty output."""
    mocker.patch(
        "subprocess.run",
        return_value=subprocess.CompletedProcess([], 1, stdout="", stderr=""),
    )

    assert Git().read_output(tmp_path, "config", ["branch.master.remote"]) == ""


def test_read_line_returns_first_line(mocker: MagicMock, tmp_path: Path) -> None:
    mock_run = mocker.patch(
        "subprocess.run",
        return_value=subprocess.CompletedProcess(
            [], 0, stdout="  origin/master\n  origin/ghc-7.8\n", stderr=""
        ),
    )

    assert Git().read_line(tmp_path, "branch", ["-r"]) == "origin/master"
    mock_run.assert_called_once_with(
        ["git", "branch", "-r"], cwd=tmp_path, capture_output=True, text=True
    )


@pytest.mark.parametrize("name", ["master", "ghc-7.8", "wip/T1234"])
def test_parse_branch_name_accepts(name: str) -> None:
    assert parse_branch_name(name) == name


@pytest.mark.parametrize("name", ["", "HEAD~1", "7.8", "a b"])
def test_parse_branch_name_rejects(name: str) -> None:
    with pytest.raises(UnexpectedOutput, match="Bad branch"):
        parse_branch_name(name)


def test_parse_remote_name() -> None:
    assert parse_remote_name("upstream") == "upstream"
    with pytest.raises(UnexpectedOutput, match="Bad remote"):
        parse_remote_name("up/stream")


def test_parse_commit_hash() -> None:
    commit = "0123456789abcdef0123456789abcdef01234567"
    assert parse_commit_hash(commit) == commit
    with pytest.raises(UnexpectedOutput, match="Bad commit of libs/x"):
        parse_commit_hash(commit[:12], "commit of libs/x")


def test_parse_ls_remote_line() -> None:
    commit = "f" * 40
    assert parse_ls_remote_line(f"{commit}\trefs/heads/master") == commit
    with pytest.raises(UnexpectedOutput):
        parse_ls_remote_line("")
