import logging
import re
import subprocess
from collections.abc import Sequence
from pathlib import Path

from .constants import APP_NAME
from .errors import UnexpectedOutput

logger = logging.getLogger(APP_NAME)

BRANCH_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9./-]*$")
REMOTE_NAME_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9.-]*$")
COMMIT_RE = re.compile(r"^[0-9a-f]{40}$")


class Git:
    """The external VCS capability used by the sync engine.

    Every call names its working directory explicitly and runs `git` there via
    `subprocess`, so the process-wide current directory is never changed.
    Side-effecting calls return the exit status and stream output to the
    terminal; read calls capture stdout.

    Attributes:
        executable (str): The git executable to invoke.
    """

    def __init__(self, executable: str = "git"):
        self.executable = executable

    def run(self, cwd: Path, subcommand: str, args: Sequence[str] = ()) -> int:
        """Runs a side-effecting git command and returns its exit status.

        Args:
            cwd (Path): Directory to run in.
            subcommand (str): The git subcommand (e.g. 'pull').
            args (Sequence[str], optional): Arguments after the subcommand.

        Returns:
            int: The process exit status. 127 if git could not be started.
        """
        cmd = [self.executable, subcommand, *args]
        try:
            return subprocess.run(cmd, cwd=cwd).returncode
        except OSError as e:
            logger.error(f"Could not run {' '.join(cmd)} in {cwd}: {e}")
            return 127

    def exec_helper(self, cwd: Path, helper: str, args: Sequence[str] = ()) -> int:
        """Runs an external git helper script (e.g. git-new-workdir).

        Args:
            cwd (Path): Directory to run in.
            helper (str): The helper executable.
            args (Sequence[str], optional): Arguments for the helper.

        Returns:
            int: The process exit status. 127 if the helper could not be started.
        """
        try:
            return subprocess.run([helper, *args], cwd=cwd).returncode
        except OSError as e:
            logger.error(f"Could not run {helper}: {e}")
            return 127

    def read_output(self, cwd: Path, subcommand: str, args: Sequence[str] = ()) -> str:
        """Runs a read-only git command and returns its stripped stdout.

        A non-zero status is not an error here: git uses it for "not set" and
        "no match". Callers validate what they get back.

        Args:
            cwd (Path): Directory to run in.
            subcommand (str): The git subcommand.
            args (Sequence[str], optional): Arguments after the subcommand.

        Returns:
            str: The stripped stdout, empty if the command printed nothing.
        """
        cmd = [self.executable, subcommand, *args]
        try:
            res = subprocess.run(cmd, cwd=cwd, capture_output=True, text=True)
        except OSError as e:
            logger.debug(f"Could not run {' '.join(cmd)} in {cwd}: {e}")
            return ""
        if res.returncode != 0:
            logger.debug(
                f"git {subcommand} exited {res.returncode} in {cwd}: {res.stderr.strip()}"
            )
        return res.stdout.strip()

    def read_line(self, cwd: Path, subcommand: str, args: Sequence[str] = ()) -> str:
        """Like `read_output`, but only the first line."""
        output = self.read_output(cwd, subcommand, args)
        return output.splitlines()[0].strip() if output else ""


def parse_branch_name(line: str) -> str:
    """Validates a branch name read from `rev-parse --abbrev-ref HEAD`.

    Raises:
        UnexpectedOutput: If the name is empty or contains unexpected characters.
    """
    if not BRANCH_RE.match(line):
        raise UnexpectedOutput(f"Bad branch: {line!r}")
    return line


def parse_remote_name(line: str) -> str:
    """Validates a remote name read from `branch.<name>.remote`."""
    if not REMOTE_NAME_RE.match(line):
        raise UnexpectedOutput(f"Bad remote: {line!r}")
    return line


def parse_commit_hash(line: str, what: str = "commit") -> str:
    """Validates a full 40-character commit hash.

    Args:
        line (str): The candidate hash.
        what (str, optional): Description used in the error message.

    Raises:
        UnexpectedOutput: If `line` is not a 40-character hex string.
    """
    if not COMMIT_RE.match(line):
        raise UnexpectedOutput(f"Bad {what}: {line!r}")
    return line


def parse_ls_remote_line(line: str, what: str = "commit") -> str:
    """Extracts the commit hash from one `ls-remote` output line.

    The line has the form '<hash>\\t<ref>'; only the hash is returned.
    """
    fields = line.split()
    return parse_commit_hash(fields[0] if fields else "", what)
