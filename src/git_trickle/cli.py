import argparse
import logging
import sys
from pathlib import Path

from rich.console import Console
from rich.table import Table

from .config import (
    Config,
    parse_batch_size,
    parse_duration,
    parse_str,
    parse_timeout,
)
from .constants import (
    APP_NAME,
    CONFIG_FILE,
    DEFAULT_BATCH_SIZE,
    DEFAULT_DISCOVERY_NAMES,
    DEFAULT_INTER_BATCH_DELAY,
    DEFAULT_REMOTE,
    LOCAL_CONFIG_NAME,
    PYPROJECT_SECTION,
)
from .discovery import find_repositories
from .git_wrapper import GitRepo
from .publisher import Publisher, PublishReport

logger = logging.getLogger(APP_NAME)
console = Console()
err_console = Console(stderr=True)


def setup_logging(verbose: bool = False) -> None:
    """Configures the logging subsystem.

    Args:
        verbose (bool): If True, log at DEBUG level (every git command is shown).
    """
    formatter = logging.Formatter(
        "[%(asctime)s] %(levelname)s: %(message)s", "%Y-%m-%d %H:%M:%S"
    )

    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setFormatter(formatter)

    logger.handlers.clear()
    logger.addHandler(stream_handler)
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)


def _apply_overrides(config: Config, args: argparse.Namespace) -> None:
    """Overlays command-line flags onto a loaded configuration.

    Args:
        config (Config): The configuration to update in place.
        args (argparse.Namespace): Parsed arguments. Absent flags are ignored.

    Raises:
        ValueError: If a flag value is invalid.
    """
    if (remote := getattr(args, "remote", None)) is not None:
        config.core.remote_name = parse_str(remote)
    if (batch_size := getattr(args, "batch_size", None)) is not None:
        config.publish.batch_size = parse_batch_size(batch_size)
    if (delay := getattr(args, "delay", None)) is not None:
        config.publish.inter_batch_delay = parse_duration(delay)
    if (timeout := getattr(args, "timeout", None)) is not None:
        config.publish.push_timeout = parse_timeout(timeout)
    if excludes := getattr(args, "exclude", None):
        merged = [*config.publish.exclude, *excludes]
        config.publish.exclude = list(dict.fromkeys(merged))
    if getattr(args, "force", False):
        config.publish.force = True


def _print_summary(report: PublishReport) -> None:
    """Renders the per-branch results of a publish run."""
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Branch", style="cyan")
    table.add_column("Commits", justify="right")
    table.add_column("Batch Pushes", justify="right")
    table.add_column("Final Push")

    for branch in report.branches:
        final = "[green]✔[/green]" if branch.final_pushed else "[yellow]skipped[/yellow]"
        table.add_row(
            branch.branch, str(branch.total), str(len(branch.pushes)), final
        )

    console.print(table)
    if report.tags_pushed:
        console.print(f"Tags pushed to [cyan]{report.remote}[/cyan].", style="dim")


def run_publish(args: argparse.Namespace) -> None:
    """Publishes the repository's branches and tags according to config and flags.

    Args:
        args (argparse.Namespace): Parsed command-line arguments.
    """
    repo_path = Path(getattr(args, "repo", None) or Path.cwd()).resolve()

    try:
        repo = GitRepo(repo_path)
    except ValueError as e:
        err_console.print(f"[bold red]ERROR:[/bold red] {e}")
        sys.exit(1)

    config = Config.load(repo_path)
    try:
        _apply_overrides(config, args)
    except ValueError as e:
        err_console.print(f"[bold red]ERROR:[/bold red] {e}")
        sys.exit(1)

    dry_run = getattr(args, "dry_run", False)
    remote = config.core.remote_name
    try:
        if remote not in repo.list_remotes():
            logger.warning(f"Remote '{remote}' is not configured in {repo_path.name}.")
    except RuntimeError as e:
        logger.debug(f"Failed to list remotes for {repo_path}: {e}")

    mode = " [yellow](dry run)[/yellow]" if dry_run else ""
    console.print(
        f"[bold blue]Git Trickle:[/bold blue] publishing [cyan]{repo_path.name}[/cyan] "
        f"to [cyan]{remote}[/cyan] in batches of {config.publish.batch_size}{mode}"
    )

    publisher = Publisher.from_config(repo, config, dry_run=dry_run)
    try:
        report = publisher.publish_all()
    except RuntimeError as e:
        logger.error(f"PUSH ERROR {repo_path.name}: {e}")
        err_console.print(f"[bold red]PUSH ERROR:[/bold red] {e}")
        err_console.print(
            "[dim]Re-run the command to resume; already published commits "
            "are skipped by the remote.[/dim]"
        )
        sys.exit(1)

    _print_summary(report)
    console.print("[bold green]✔ Incremental push completed.[/bold green]")


def run_discover(args: argparse.Namespace) -> None:
    """Lists repositories found under the search root.

    Args:
        args (argparse.Namespace): Parsed command-line arguments.
    """
    root = Path(args.root).expanduser()
    if not root.is_dir():
        err_console.print(f"[bold red]ERROR:[/bold red] Not a directory: {root}")
        sys.exit(1)

    names = args.names or DEFAULT_DISCOVERY_NAMES
    with console.status(f"Searching for repositories in {root}...", spinner="dots"):
        repos = find_repositories(root, names)

    if not repos:
        console.print(f"[yellow]No repositories found in {root}.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Repository", style="cyan")
    table.add_column("Type", style="dim")
    for path in repos:
        kind = "working copy" if (path / ".git").exists() else "bare"
        display_path = str(path).replace(str(Path.home()), "~")
        table.add_row(display_path, kind)
    console.print(table)


def show_config_reference() -> None:
    """Displays a formatted table of all available configuration options."""
    table = Table(title="Git Trickle Configuration Schema", show_lines=True)
    table.add_column("Section", style="cyan", justify="right")
    table.add_column("Key", style="green")
    table.add_column("Type", style="dim")
    table.add_column("Default", style="yellow")
    table.add_column("Description")

    table.add_row(
        "core",
        "remote_name",
        "str",
        f'"{DEFAULT_REMOTE}"',
        "The remote that receives branches and tags.",
    )
    table.add_row(
        "publish",
        "batch_size",
        "int",
        str(DEFAULT_BATCH_SIZE),
        "Max commits advanced by one intermediate push.",
    )
    table.add_row(
        "",
        "inter_batch_delay",
        "float | str",
        f'"{DEFAULT_INTER_BATCH_DELAY:g}s"',
        "Pause after each intermediate push (e.g., '2s', '500ms', 0).",
    )
    table.add_row(
        "",
        "push_timeout",
        "float | str",
        "None",
        "Abort a single push after this long (e.g., '10m'). Unset or 0 waits forever.",
    )
    table.add_row("", "exclude", "list", "[]", "Branch names that are never published.")
    table.add_row(
        "", "force", "bool", "false", "Force every ref update ('+' refspecs)."
    )

    console.print(table)


def show_effective_config() -> None:
    """Displays the merged configuration that `publish` would use in the cwd."""
    cwd = Path.cwd()
    conf = Config.load(cwd)

    table = Table(title="Git Trickle Effective Configuration")
    table.add_column("Section", style="cyan", justify="right")
    table.add_column("Key", style="green")
    table.add_column("Value", style="yellow")

    table.add_row("core", "remote_name", conf.core.remote_name)
    table.add_row("publish", "batch_size", str(conf.publish.batch_size))
    table.add_row("", "inter_batch_delay", f"{conf.publish.inter_batch_delay:g}s")
    timeout = conf.publish.push_timeout
    table.add_row("", "push_timeout", "None" if timeout is None else f"{timeout:g}s")
    table.add_row("", "exclude", ", ".join(conf.publish.exclude) or "[]")
    table.add_row("", "force", str(conf.publish.force).lower())

    console.print(table)
    console.print(
        f"Sources: {CONFIG_FILE}, {cwd / LOCAL_CONFIG_NAME} "
        f"(or [{PYPROJECT_SECTION}] in pyproject.toml). "
        "Run 'git-trickle config --list' for all options.",
        style="dim",
        markup=False,
    )


class TrickleHelpFormatter(argparse.HelpFormatter):
    """Groups the subcommands into logical categories in the help output."""

    def _format_action(self, action: argparse.Action) -> str:
        if isinstance(action, argparse._SubParsersAction):
            parts = []
            groups = {
                "Publishing": ["publish"],
                "Utilities": ["discover", "config"],
                "General": ["help"],
            }

            subactions = list(self._iter_indented_subactions(action))

            for group_name, commands in groups.items():
                group_actions = [a for a in subactions if a.dest in commands]
                if not group_actions:
                    continue

                parts.append(f"\n  {group_name}:\n")

                self._indent()
                for subaction in group_actions:
                    parts.append(self._format_action(subaction))
                self._dedent()

            return self._join_parts(parts)

        return super()._format_action(action)


def _publish_options() -> argparse.ArgumentParser:
    """Builds the publish flags shared by the top-level parser and `publish`.

    Defaults are suppressed so that a flag given on either level survives and
    unset flags fall through to the loaded configuration.
    """
    parent = argparse.ArgumentParser(add_help=False, argument_default=argparse.SUPPRESS)
    parent.add_argument("--repo", help="Repository to publish (default: cwd)")
    parent.add_argument("--remote", help=f"Remote name (default: {DEFAULT_REMOTE})")
    parent.add_argument(
        "--batch-size",
        help=f"Commits per intermediate push (default: {DEFAULT_BATCH_SIZE})",
    )
    parent.add_argument(
        "--delay",
        help="Pause after each intermediate push, e.g. '2s' or 0 (default: 2s)",
    )
    parent.add_argument(
        "--timeout",
        help="Abort a single push after this long; 0 disables (default: none)",
    )
    parent.add_argument(
        "--exclude",
        action="append",
        metavar="BRANCH",
        help="Skip a branch (repeatable)",
    )
    parent.add_argument(
        "--force", action="store_true", help="Force every ref update"
    )
    parent.add_argument(
        "--dry-run", action="store_true", help="Pass --dry-run to every git push"
    )
    parent.add_argument(
        "-v", "--verbose", action="store_true", help="Show every git command"
    )
    return parent


def main() -> None:
    """Main entry point for the Git Trickle CLI."""
    publish_options = _publish_options()
    parser = argparse.ArgumentParser(
        prog=APP_NAME,
        description="Push a large repository to a remote in bounded batches.",
        formatter_class=TrickleHelpFormatter,
        parents=[publish_options],
    )

    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser(
        "publish",
        help="Publish all branches in batches, then tags (default)",
        parents=[publish_options],
    )

    discover_parser = subparsers.add_parser(
        "discover", help="Find repositories by directory name"
    )
    discover_parser.add_argument(
        "names",
        nargs="*",
        help=f"Directory names to search for (default: {' '.join(DEFAULT_DISCOVERY_NAMES)})",
    )
    discover_parser.add_argument(
        "--root", default=str(Path.home()), help="Directory to search (default: ~)"
    )

    config_parser = subparsers.add_parser(
        "config", help="Show the effective configuration or all options"
    )
    config_parser.add_argument(
        "--list",
        "-l",
        action="store_true",
        help="List all available configuration options and their descriptions",
    )

    subparsers.add_parser("help", help="Show this help message")

    args = parser.parse_args()
    setup_logging(getattr(args, "verbose", False))

    if args.command == "help":
        parser.print_help()
        return
    elif args.command == "discover":
        run_discover(args)
        return
    elif args.command == "config":
        if getattr(args, "list", False):
            show_config_reference()
        else:
            show_effective_config()
        return

    # Default Action (no subcommand, or 'publish')
    run_publish(args)


if __name__ == "__main__":
    main()
