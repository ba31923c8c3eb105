import logging
import re
from dataclasses import dataclass
from pathlib import Path

from .config import RunOptions
from .constants import APP_NAME, DEFAULT_REMOTE, HOSTING_PROVIDER_PATTERN
from .errors import ConfigurationError, UnexpectedOutput
from .git_wrapper import Git, parse_branch_name, parse_remote_name

logger = logging.getLogger(APP_NAME)

# At least two characters before the colon, so 'C:\' is not taken for a host.
NETWORK_RE = re.compile(r"^..+:")
LOCAL_RE = re.compile(r"^(/|\.\.?/|\.\.?$|[A-Za-z]:[\\/])")
HOSTING_PROVIDER_RE = re.compile(HOSTING_PROVIDER_PATTERN)


@dataclass(frozen=True)
class RemoteRoot:
    """Where the remote repository tree lives, and how it is laid out.

    Attributes:
        location (str): Base address every repository path is appended to.
        checked_out (bool): The remote is a checked-out tree rather than a set
            of bare mirrors.
        local (bool): The remote is on the local filesystem.
    """

    location: str
    checked_out: bool
    local: bool

    @property
    def is_hosting_provider(self) -> bool:
        """Whether the remote is on a host that disallows nested repo paths."""
        return bool(HOSTING_PROVIDER_RE.search(self.location))


def is_network_address(address: str) -> bool:
    return bool(NETWORK_RE.match(address))


def is_local_address(address: str) -> bool:
    return bool(LOCAL_RE.match(address))


def strip_last_segment(address: str) -> str:
    """Drops the final path segment: 'git://host/ghc.git' -> 'git://host'."""
    return re.sub(r"/[^/]+/?$", "", address)


def infer_remote_url(git: Git, root: Path, default_remote: str = DEFAULT_REMOTE) -> str:
    """Finds the address the primary repository's current branch tracks.

    Args:
        git (Git): The VCS capability.
        root (Path): The tree root (the primary repository).
        default_remote (str, optional): Remote used when the branch has none.

    Returns:
        str: The remote URL.

    Raises:
        ConfigurationError: If the branch, the remote, or its URL are unusable.
    """
    try:
        branch = parse_branch_name(
            git.read_line(root, "rev-parse", ["--abbrev-ref", "HEAD"])
        )
        remote = git.read_line(root, "config", [f"branch.{branch}.remote"])
        remote = parse_remote_name(remote or default_remote)
    except UnexpectedOutput as e:
        raise ConfigurationError(str(e)) from e

    url = git.read_line(root, "config", [f"remote.{remote}.url"])
    if not url:
        raise ConfigurationError(
            f"Remote '{remote}' of branch '{branch}' has no URL; "
            "pass the remote tree root explicitly with -r"
        )
    logger.debug(f"Branch {branch} tracks {remote} at {url}")
    return url


def classify_remote(
    address: str,
    root: Path,
    *,
    explicit: bool,
    checked_out_flag: bool,
    primary_mirror: str,
) -> RemoteRoot:
    """Works out the tree root and layout from one remote address.

    Args:
        address (str): The explicit root, or the URL the primary repo tracks.
        root (Path): The local tree root, for resolving relative paths.
        explicit (bool): `address` was given on the command line; it is used
            verbatim.
        checked_out_flag (bool): The user declared the remote a checked-out tree.
        primary_mirror (str): Directory name of the primary repo's bare mirror.

    Returns:
        RemoteRoot: The resolved descriptor.

    Raises:
        ConfigurationError: If `address` looks neither like a network address
            nor like a filesystem path.
    """
    network = is_network_address(address)

    if explicit:
        return RemoteRoot(address, checked_out=checked_out_flag, local=not network)

    if network:
        if checked_out_flag:
            return RemoteRoot(address, checked_out=True, local=False)
        return RemoteRoot(strip_last_segment(address), checked_out=False, local=False)

    if is_local_address(address):
        target = root / address
        if checked_out_flag:
            return RemoteRoot(address, checked_out=True, local=True)
        if (target / "HEAD").is_file():
            # The primary repo's own bare mirror; its parent holds the rest.
            return RemoteRoot(strip_last_segment(address), checked_out=False, local=True)
        if (target / primary_mirror).is_dir():
            return RemoteRoot(address, checked_out=False, local=True)
        return RemoteRoot(address, checked_out=True, local=True)

    raise ConfigurationError(
        f"Cannot infer remote tree layout from '{address}'; "
        "pass the remote tree root explicitly with -r"
    )


def resolve_remote_root(
    git: Git,
    root: Path,
    options: RunOptions,
    primary_mirror: str,
    default_remote: str = DEFAULT_REMOTE,
) -> RemoteRoot:
    """Resolves the remote tree root for this run.

    Uses `options.root_override` when given, otherwise inspects the primary
    repository's tracking configuration.
    """
    if options.root_override:
        remote = classify_remote(
            options.root_override,
            root,
            explicit=True,
            checked_out_flag=options.checked_out,
            primary_mirror=primary_mirror,
        )
    else:
        remote = classify_remote(
            infer_remote_url(git, root, default_remote),
            root,
            explicit=False,
            checked_out_flag=options.checked_out,
            primary_mirror=primary_mirror,
        )

    layout = "checked-out tree" if remote.checked_out else "bare mirrors"
    where = "local" if remote.local else "network"
    logger.info(f"Remote tree root: {remote.location} ({where}, {layout})")
    return remote
