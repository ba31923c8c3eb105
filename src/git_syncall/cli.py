import argparse
import logging
import sys
from collections.abc import Sequence
from logging.handlers import RotatingFileHandler
from pathlib import Path

from rich.console import Console
from rich.table import Table

from .config import Config, RunOptions, Verbosity
from .constants import APP_NAME, LOG_FILE
from .errors import SyncError, UsageError
from .manifest import TagSet, load_manifest
from .operations import Command, Operation, parse_operation
from .orchestrator import Orchestrator, RunReport

logger = logging.getLogger(APP_NAME)
console = Console()
err_console = Console(stderr=True)

COMMAND_GROUPS = {
    "Fetching": ["get", "pull", "fetch", "new-workdir"],
    "Inspecting": ["status", "log", "new", "diff", "grep", "compare", "check_submodules"],
    "Changing": [
        "commit",
        "push",
        "send",
        "checkout",
        "reset",
        "clean",
        "branch",
        "tag",
        "config",
        "remote",
    ],
    "Maintenance": ["gc", "repack", "format-patch"],
}

LEVELS = {
    Verbosity.SILENT: logging.ERROR,
    Verbosity.QUIET: logging.WARNING,
    Verbosity.NORMAL: logging.INFO,
    Verbosity.VERBOSE: logging.DEBUG,
}


def _commands_epilog() -> str:
    lines = ["commands:"]
    for group_name, commands in COMMAND_GROUPS.items():
        lines.append(f"  {group_name}:")
        lines.append("    " + ", ".join(commands))
    lines.append("")
    lines.append("tags: --<tag> includes, --no-<tag> excludes repos with that tag.")
    return "\n".join(lines)


def build_parser() -> argparse.ArgumentParser:
    """Builds the argument parser for the global flags and the command."""
    parser = argparse.ArgumentParser(
        prog=APP_NAME,
        description="Run one git operation across every repository of a tree.",
        epilog=_commands_epilog(),
        formatter_class=argparse.RawDescriptionHelpFormatter,
        allow_abbrev=False,
    )

    verbosity = parser.add_mutually_exclusive_group()
    verbosity.add_argument(
        "-q", "--quiet", action="store_true", help="Only report warnings and errors"
    )
    verbosity.add_argument(
        "-s", "--silent", action="store_true", help="Only report errors"
    )
    verbosity.add_argument(
        "-v", "--verbose", action="store_true", help="Report debugging detail"
    )

    parser.add_argument(
        "--resume",
        action="store_true",
        help="Continue an interrupted run of the same command",
    )
    parser.add_argument(
        "--ignore-failure",
        "--ignore-failures",
        dest="ignore_failures",
        action="store_true",
        help="Warn about failing git commands instead of stopping",
    )
    parser.add_argument(
        "-r",
        "--root",
        dest="root_override",
        metavar="URL",
        help="Root of the remote repository tree",
    )
    parser.add_argument(
        "--checked-out",
        action="store_true",
        help="The remote root is a checked-out tree, not bare mirrors",
    )
    parser.add_argument(
        "--bare", action="store_true", help="The local tree holds bare repositories"
    )

    parser.add_argument("command", metavar="COMMAND", help="Operation to run")
    parser.add_argument(
        "args", nargs=argparse.REMAINDER, help="Arguments passed to the operation"
    )
    return parser


def apply_tag_flags(tags: TagSet, flags: Sequence[str]) -> None:
    """Applies `--<tag>` / `--no-<tag>` toggles to the tag set.

    Raises:
        UsageError: For a flag that is not a known tag toggle.
    """
    for flag in flags:
        if not flag.startswith("--"):
            raise UsageError(f"Unexpected argument: {flag}")
        name = flag[2:]
        if name.startswith("no-") and name[3:] in tags:
            tags.disable(name[3:])
        elif name in tags:
            tags.enable(name)
        else:
            raise UsageError(f"Unknown flag: {flag}")


def build_options(
    args: argparse.Namespace, tags: TagSet, flags: Sequence[str], config: Config
) -> RunOptions:
    """Folds configuration defaults and command-line flags into `RunOptions`."""
    for tag in config.tags.enable:
        if tag in tags:
            tags.enable(tag)
        else:
            logger.warning(f"Configured tag '{tag}' is not in the manifest")
    for tag in config.tags.disable:
        if tag in tags:
            tags.disable(tag)
        else:
            logger.warning(f"Configured tag '{tag}' is not in the manifest")
    apply_tag_flags(tags, flags)

    return RunOptions(
        enabled_tags=tags.enabled(),
        verbosity=_verbosity(args),
        resume=args.resume,
        ignore_failures=args.ignore_failures,
        root_override=args.root_override,
        checked_out=args.checked_out,
        bare=args.bare,
    )


def _verbosity(args: argparse.Namespace) -> Verbosity:
    if args.silent:
        return Verbosity.SILENT
    if args.quiet:
        return Verbosity.QUIET
    if args.verbose:
        return Verbosity.VERBOSE
    return Verbosity.NORMAL


def setup_logging(
    verbosity: Verbosity, config: Config, log_file: Path | None = None
) -> None:
    """Configures the logging subsystem.

    Console output goes to stderr at the level chosen by the verbosity flags.
    Every run is also appended, at INFO, to a rotating log file.

    Args:
        verbosity (Verbosity): The requested reporting level.
        config (Config): Loaded settings (for the log size limit).
        log_file (Path | None, optional): The rotating log file.
                                          Defaults to LOG_FILE.
    """
    log_file = log_file or LOG_FILE
    formatter = logging.Formatter(
        "[%(asctime)s] %(levelname)s: %(message)s", "%Y-%m-%d %H:%M:%S"
    )
    logger.setLevel(logging.DEBUG)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setFormatter(formatter)
    stream_handler.setLevel(LEVELS[verbosity])
    logger.addHandler(stream_handler)

    try:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=config.limits.max_log_size,
            backupCount=3,
        )
    except OSError as e:
        logger.debug(f"Run log disabled, cannot open {log_file}: {e}")
        return
    file_handler.setFormatter(formatter)
    file_handler.setLevel(logging.INFO)
    logger.addHandler(file_handler)


def render_report(operation: Operation, report: RunReport, verbosity: Verbosity) -> None:
    """Prints the outcome of a run."""
    if operation.command is Command.COMPARE and report.comparisons:
        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Repository", style="cyan")
        table.add_column("Branch", style="dim")
        table.add_column("Result")
        for result in report.comparisons:
            if result.same:
                outcome = "[green]same[/green]"
            else:
                outcome = "[bold yellow]different[/bold yellow]"
            table.add_row(result.local_path, result.branch, outcome)
        console.print(table)

    if report.failures:
        err_console.print(
            f"[bold yellow]⚠ {len(report.failures)} command(s) failed:[/bold yellow]"
        )
        for failure in report.failures:
            err_console.print(f"   - {failure}", style="yellow")

    if verbosity >= Verbosity.NORMAL:
        console.print(
            f"[bold green]✔ {operation.command.value}[/bold green] "
            f"[dim]{len(report.processed)} repositories, "
            f"{len(report.skipped)} skipped[/dim]"
        )


def main(argv: Sequence[str] | None = None) -> None:
    """Main entry point for the git-syncall CLI."""
    parser = build_parser()
    args, flags = parser.parse_known_args(argv)

    root = Path.cwd()
    config = Config.load(root)

    try:
        operation = parse_operation(args.command, args.args)
        manifest = load_manifest(root, config.core.manifest_files)
        options = build_options(args, manifest.tags, flags, config)
        setup_logging(options.verbosity, config)

        orchestrator = Orchestrator(root, manifest, options, config)
        report = orchestrator.run(operation)
    except UsageError as e:
        parser.print_usage(sys.stderr)
        err_console.print(f"[bold red]ERROR:[/bold red] {e}")
        sys.exit(2)
    except (SyncError, OSError) as e:
        err_console.print(f"[bold red]ERROR:[/bold red] {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        err_console.print("\nInterrupted. Re-run with --resume to continue.", style="dim")
        sys.exit(130)

    render_report(operation, report, options.verbosity)


if __name__ == "__main__":
    main()
