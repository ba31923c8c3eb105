"""Manifest loading.

The manifest lists every repository of the tree, one per line:

    # localpath            tag       remotepath            upstream
    .                      -         ghc.git               https://example.org/ghc
    libraries/base         -         packages/base.git     -
    libraries/Cabal        -         -                     https://example.org/cabal
    nofib                  nofib     nofib.git             -

Blank lines and lines starting with `#` are ignored. Line order is iteration
order, and therefore resume order.
"""

import logging
import sys
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from pathlib import Path

from .constants import (
    ALWAYS_TAG,
    APP_NAME,
    MANIFEST_FILES,
    PLATFORM_TAG,
    PRIMARY_PATH,
    SUBMODULE_MARKER,
)
from .errors import FormatError, ManifestNotFound, UsageError

logger = logging.getLogger(APP_NAME)


@dataclass(frozen=True)
class RepositoryRecord:
    """One manifest entry.

    Attributes:
        local_path (str): Path relative to the tree root; unique.
        tag (str): Inclusion group, or `-` for always included.
        remote_path (str): Path under the remote root, or `-` for a submodule.
        upstream_url (str): Informational upstream location.
    """

    local_path: str
    tag: str
    remote_path: str
    upstream_url: str

    @property
    def is_submodule(self) -> bool:
        return self.remote_path == SUBMODULE_MARKER

    @property
    def is_required(self) -> bool:
        return self.tag == ALWAYS_TAG

    @property
    def is_primary(self) -> bool:
        return self.local_path == PRIMARY_PATH


class TagSet:
    """Inclusion state of every known tag.

    Seeded from the manifest with every tag off, plus the always-on `-` tag and
    the platform tag (on only on Windows). Toggled by configuration and flags,
    then frozen into `RunOptions.enabled_tags` via `enabled()`.
    """

    def __init__(self, tags: Iterable[str] = ()):
        self._state: dict[str, bool] = {tag: False for tag in tags}
        self._state[ALWAYS_TAG] = True
        self._state[PLATFORM_TAG] = sys.platform == "win32"

    def __contains__(self, tag: object) -> bool:
        return tag in self._state

    def __iter__(self) -> Iterator[str]:
        return iter(self._state)

    def is_enabled(self, tag: str) -> bool:
        return self._state.get(tag, False)

    def set(self, tag: str, enabled: bool) -> None:
        """Switches a known tag on or off.

        Raises:
            UsageError: If the tag is unknown, or is the always-on tag.
        """
        if tag not in self._state:
            raise UsageError(f"Unknown tag '{tag}'")
        if tag == ALWAYS_TAG:
            raise UsageError(f"Tag '{ALWAYS_TAG}' is always enabled")
        self._state[tag] = enabled

    def enable(self, tag: str) -> None:
        self.set(tag, True)

    def disable(self, tag: str) -> None:
        self.set(tag, False)

    def enabled(self) -> frozenset[str]:
        return frozenset(tag for tag, on in self._state.items() if on)


@dataclass
class Manifest:
    """The parsed repository list.

    Attributes:
        records (list[RepositoryRecord]): Entries in file order.
        tags (TagSet): Every tag seen, initially excluded.
        source (str): Where the manifest was read from.
    """

    records: list[RepositoryRecord] = field(default_factory=list)
    tags: TagSet = field(default_factory=TagSet)
    source: str = "<manifest>"

    @property
    def primary(self) -> RepositoryRecord | None:
        """The record of the tree root repository, if listed."""
        return next((r for r in self.records if r.is_primary), None)

    def submodule_paths(self, enabled_tags: frozenset[str]) -> list[str]:
        """Local paths of the included submodule records, in file order."""
        return [
            r.local_path
            for r in self.records
            if r.is_submodule and r.tag in enabled_tags
        ]


def parse_manifest(lines: Iterable[str], source: str = "<manifest>") -> Manifest:
    """Parses manifest lines into records and the set of known tags.

    Args:
        lines (Iterable[str]): Raw manifest lines.
        source (str, optional): Name used in error messages.

    Returns:
        Manifest: The ordered records and their tags.

    Raises:
        FormatError: On a line without exactly four fields, or a repeated
            local path.
    """
    records: list[RepositoryRecord] = []
    seen: set[str] = set()
    tags: list[str] = []

    for line_number, line in enumerate(lines, start=1):
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue

        fields = stripped.split()
        if len(fields) != 4:
            raise FormatError(source, line_number, line)

        record = RepositoryRecord(*fields)
        if record.local_path in seen:
            raise FormatError(
                source, line_number, line, f"duplicate local path {record.local_path}"
            )
        seen.add(record.local_path)
        records.append(record)
        if record.tag not in tags:
            tags.append(record.tag)

    return Manifest(records=records, tags=TagSet(tags), source=source)


def load_manifest(
    root: Path, candidates: Iterable[str] = MANIFEST_FILES
) -> Manifest:
    """Reads the first manifest file that exists under `root`.

    Raises:
        ManifestNotFound: If none of the candidates exist.
        FormatError: If the manifest is malformed.
    """
    names = list(candidates)
    for name in names:
        path = root / name
        if path.is_file():
            logger.debug(f"Reading manifest {path}")
            with open(path) as f:
                return parse_manifest(f, source=name)
    raise ManifestNotFound(root, names)
