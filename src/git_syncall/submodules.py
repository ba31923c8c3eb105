import logging
import re
from collections.abc import Callable, Sequence
from pathlib import Path

from .constants import APP_NAME
from .errors import SubmoduleDriftError, UnexpectedOutput
from .git_wrapper import Git, parse_commit_hash
from .remote import RemoteRoot

logger = logging.getLogger(APP_NAME)

SUBMODULE_URL_RE = re.compile(r"^submodule\.(.+)\.url\s+(\S+)$")
PACKAGES_URL_RE = re.compile(r"(?:^\.\.|/)packages/(.+)$")

RunGit = Callable[[Path, str, Sequence[str]], None]


def parse_submodule_urls(output: str) -> list[tuple[str, str]]:
    """Parses `git config --get-regexp` output into (name, url) pairs.

    Raises:
        UnexpectedOutput: If a line is not 'submodule.<name>.url <url>'.
    """
    pairs = []
    for line in output.splitlines():
        if not line.strip():
            continue
        match = SUBMODULE_URL_RE.match(line.strip())
        if not match:
            raise UnexpectedOutput(f"Unexpected submodule config line: {line!r}")
        pairs.append((match.group(1), match.group(2)))
    return pairs


def rewrite_submodule_url(
    name: str,
    url: str,
    remote: RemoteRoot,
    sibling_exists: Callable[[str], bool],
) -> str | None:
    """Works out the URL a submodule should be fetched from.

    Args:
        name (str): The submodule name (its path in the tree).
        url (str): The URL currently recorded for it.
        remote (RemoteRoot): The resolved remote root.
        sibling_exists (Callable[[str], bool]): Tells whether the remote root
            already holds a checkout at the given relative path.

    Returns:
        str | None: The replacement URL, or None to keep `url`.
    """
    if remote.is_hosting_provider:
        match = PACKAGES_URL_RE.search(url)
        if match:
            return f"{remote.location}/packages-{match.group(1)}"
        return None

    if remote.local and sibling_exists(name):
        return f"{remote.location}/{name}"

    return None


def reconcile_submodules(
    git: Git,
    root: Path,
    remote: RemoteRoot,
    run_git: RunGit,
    paths: Sequence[str],
) -> None:
    """Points the selected submodules at the resolved remote layout and updates them.

    Args:
        git (Git): The VCS capability, for reading configuration.
        root (Path): The tree root.
        remote (RemoteRoot): The resolved remote root.
        run_git (RunGit): Side-effecting runner applying the failure policy.
        paths (Sequence[str]): Local paths of the included submodules. Others
            are neither initialized, rewritten nor fetched.
    """
    if not paths:
        return

    run_git(root, "submodule", ["init", "--", *paths])

    output = git.read_output(root, "config", ["--get-regexp", r"^submodule\..*\.url$"])

    def sibling_exists(name: str) -> bool:
        return (root / remote.location / name / ".git").exists()

    selected = set(paths)
    for name, url in parse_submodule_urls(output):
        if name not in selected:
            continue
        new_url = rewrite_submodule_url(name, url, remote, sibling_exists)
        if new_url and new_url != url:
            logger.info(f"Submodule {name}: {url} -> {new_url}")
            run_git(root, "config", [f"submodule.{name}.url", new_url])

    run_git(root, "submodule", ["update", "--", *paths])


def check_submodule(git: Git, path: Path, local_path: str) -> str:
    """Verifies a submodule's checked-out commit is on some remote branch.

    Returns:
        str: The checked-out commit.

    Raises:
        SubmoduleDriftError: If no remote tracking branch contains the commit.
        UnexpectedOutput: If HEAD does not resolve to a commit.
    """
    commit = parse_commit_hash(
        git.read_line(path, "rev-parse", ["HEAD"]), f"commit of {local_path}"
    )
    branches = git.read_output(path, "branch", ["-r", "--contains", commit])
    if not branches:
        raise SubmoduleDriftError(local_path, commit)
    logger.debug(f"{local_path} at {commit} is on {branches.splitlines()[0].strip()}")
    return commit
