"""Computing the remote address of one repository.

Everything here is pure: the caller looks up a submodule's configured URL and
passes it in, so the address computation never touches git or the disk.
"""

from .errors import ConfigurationError
from .manifest import RepositoryRecord
from .remote import RemoteRoot


def strip_parent_prefix(url: str) -> str:
    """Removes a single leading '../' from a relative submodule URL."""
    return url[3:] if url.startswith("../") else url


def flatten_for_provider(segment: str) -> str:
    """Replaces only the first '/' with '-': 'packages/foo.git' -> 'packages-foo.git'."""
    return segment.replace("/", "-", 1)


def remote_segment(
    record: RepositoryRecord, remote: RemoteRoot, submodule_url: str | None = None
) -> str:
    """The path of `record` under the remote root.

    Args:
        record (RepositoryRecord): The manifest entry.
        remote (RemoteRoot): The resolved remote root.
        submodule_url (str | None, optional): The URL recorded for the
            submodule at `record.local_path`; needed only for submodules on a
            bare-mirror root.

    Raises:
        ConfigurationError: If a submodule URL is needed but missing.
    """
    if remote.checked_out:
        segment = record.local_path
    elif record.is_submodule:
        if not submodule_url:
            raise ConfigurationError(
                f"No URL configured for submodule {record.local_path}"
            )
        segment = strip_parent_prefix(submodule_url)
    else:
        segment = record.remote_path

    if remote.is_hosting_provider:
        segment = flatten_for_provider(segment)
    return segment


def resolve_address(
    record: RepositoryRecord, remote: RemoteRoot, submodule_url: str | None = None
) -> str:
    """The concrete address to clone from or push to for `record`."""
    return f"{remote.location}/{remote_segment(record, remote, submodule_url)}"
