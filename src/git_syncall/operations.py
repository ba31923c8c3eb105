from collections.abc import Sequence
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path

from .errors import UsageError


class Command(StrEnum):
    """Every operation the orchestrator can apply to the tree."""

    GET = "get"
    STATUS = "status"
    COMMIT = "commit"
    PUSH = "push"
    PULL = "pull"
    FETCH = "fetch"
    LOG = "log"
    NEW = "new"
    NEW_WORKDIR = "new-workdir"
    SEND = "send"
    CHECKOUT = "checkout"
    GREP = "grep"
    DIFF = "diff"
    CLEAN = "clean"
    RESET = "reset"
    BRANCH = "branch"
    CONFIG = "config"
    REPACK = "repack"
    FORMAT_PATCH = "format-patch"
    GC = "gc"
    TAG = "tag"
    REMOTE = "remote"
    COMPARE = "compare"
    CHECK_SUBMODULES = "check_submodules"


# Non-zero exits from these are routine ("nothing to commit", "remote already
# exists", "no such branch here", "no matches"), so they never abort a run.
TOLERANT_COMMANDS = frozenset(
    {Command.COMMIT, Command.REMOTE, Command.CHECKOUT, Command.GREP}
)

REMOTE_SUBCOMMANDS = ("add", "rm", "set-branches", "set-url")


@dataclass(frozen=True)
class Operation:
    """A parsed command and the raw arguments it was given.

    Attributes:
        command (Command): The operation kind.
        args (tuple[str, ...]): Arguments exactly as typed.
    """

    command: Command
    args: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        payload = PAYLOAD_TYPES.get(self.command, Operation)
        if not isinstance(self, payload):
            raise UsageError(
                f"{self.command.value} needs a {payload.__name__}; "
                "build it with parse_operation"
            )

    @property
    def signature(self) -> str:
        """Identity of the invocation for resuming: name and args, space-joined."""
        return " ".join([self.command.value, *self.args])

    @property
    def tolerant(self) -> bool:
        return self.command in TOLERANT_COMMANDS


@dataclass(frozen=True)
class RemoteOperation(Operation):
    """`remote <subcommand> <name> [extra...]`.

    Attributes:
        subcommand (str): One of add, rm, set-branches, set-url.
        name (str): The remote name.
        extra (tuple[str, ...]): Trailing arguments (e.g. branches).
    """

    subcommand: str = ""
    name: str = ""
    extra: tuple[str, ...] = ()

    @property
    def needs_address(self) -> bool:
        return self.subcommand in ("add", "set-url")


@dataclass(frozen=True)
class NewWorkdirOperation(Operation):
    """`new-workdir <target> [extra...]`: linked work dirs under `target`."""

    target: Path = Path()
    extra: tuple[str, ...] = ()


@dataclass(frozen=True)
class CompareOperation(Operation):
    """`compare [dir | -b base]`.

    With no arguments each repository is compared with its remote address.
    `dir` names another tree relative to the current one; `-b base` names a
    remote root that repository paths are appended to.
    """

    target_dir: str | None = None
    base: str | None = None


PAYLOAD_TYPES: dict[Command, type[Operation]] = {
    Command.REMOTE: RemoteOperation,
    Command.NEW_WORKDIR: NewWorkdirOperation,
    Command.COMPARE: CompareOperation,
}


def _parse_remote(args: tuple[str, ...]) -> Operation:
    # Options go after the remote name, so the name is never mistaken for one.
    if (
        len(args) < 2
        or args[0] not in REMOTE_SUBCOMMANDS
        or args[1].startswith("-")
    ):
        raise UsageError(
            "Usage: remote {" + "|".join(REMOTE_SUBCOMMANDS) + "} <name> [args...]"
        )
    return RemoteOperation(
        Command.REMOTE, args, subcommand=args[0], name=args[1], extra=args[2:]
    )


def _parse_new_workdir(args: tuple[str, ...]) -> Operation:
    if not args:
        raise UsageError("Usage: new-workdir <target> [args...]")
    return NewWorkdirOperation(
        Command.NEW_WORKDIR, args, target=Path(args[0]), extra=args[1:]
    )


def _parse_compare(args: tuple[str, ...]) -> Operation:
    if not args:
        return CompareOperation(Command.COMPARE, args)
    if len(args) == 1 and args[0] != "-b":
        return CompareOperation(Command.COMPARE, args, target_dir=args[0])
    if len(args) == 2 and args[0] == "-b":
        return CompareOperation(Command.COMPARE, args, base=args[1])
    raise UsageError("Usage: compare [<dir> | -b <remote root>]")


_PARSERS = {
    Command.REMOTE: _parse_remote,
    Command.NEW_WORKDIR: _parse_new_workdir,
    Command.COMPARE: _parse_compare,
}


def parse_operation(name: str, args: Sequence[str] = ()) -> Operation:
    """Turns a command name and its arguments into a typed operation.

    Raises:
        UsageError: For an unknown command or malformed arguments.
    """
    try:
        command = Command(name)
    except ValueError:
        raise UsageError(f"Unknown command: {name}") from None

    arg_tuple = tuple(args)
    parser = _PARSERS.get(command)
    if parser:
        return parser(arg_tuple)
    if command is Command.CHECK_SUBMODULES and arg_tuple:
        raise UsageError("check_submodules takes no arguments")
    return Operation(command, arg_tuple)
