from __future__ import annotations

import argparse
import logging
import os
import sys

from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.text import Text

from repomanager.config import load_config
from repomanager.github import GitHubClient
from repomanager.models import ManagerConfig
from repomanager.prompts import RichPrompter
from repomanager.reconcile import ReconcileReport, Reconciler

__version__ = "0.1.0"

console = Console()

TOKEN_ENV = "GITHUB_TOKEN"


# =============================================================================
# Output Helpers
# =============================================================================


def _print_header(config: ManagerConfig, mode: str | None = None) -> None:
    title = Text()
    title.append("repo-manager", style="bold magenta")
    title.append(f" v{__version__}", style="dim")
    if mode:
        title.append(f"  [{mode}]", style="bold yellow")

    console.print()
    console.print(title)
    console.print()
    console.print(f"  [dim]organization[/dim]  {escape(config.organization)}")
    if config.prefix:
        console.print(f"  [dim]prefix[/dim]        {escape(config.prefix)}")
    console.print(f"  [dim]users[/dim]         {len(config.users)}")
    if config.source:
        console.print(f"  [dim]config[/dim]        {escape(config.source)}")


def _configure_logging(verbose: bool) -> None:
    handler = RichHandler(console=Console(stderr=True), show_path=False)
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(name)s: %(message)s",
        handlers=[handler],
        force=True,
    )
    if not verbose:
        return
    # httpx/httpcore debug output would repeat what repomanager.github logs
    for name in ("httpx", "httpcore"):
        logging.getLogger(name).setLevel(logging.WARNING)


def _normalize_argv(argv: list[str]) -> list[str]:
    normalized: list[str] = []
    for arg in argv:
        for prefix in ("--repo", "--config", "--github-token"):
            if arg.startswith(prefix) and arg != prefix and not arg.startswith(f"{prefix}="):
                value = arg[len(prefix):]
                if value:
                    normalized.extend([prefix, value])
                    break
        else:
            normalized.append(arg)
    return normalized


def _exit_code(report: ReconcileReport) -> int:
    if report.error or report.failed:
        return 1
    return 0


# =============================================================================
# Main Entry Point
# =============================================================================


def _build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--config", metavar="FILE",
                        help="Config file (default: ./config.yaml, then ~/.repo-manager/config.yaml)")
    common.add_argument("--github-token", metavar="TOKEN",
                        help=f"GitHub token (overrides {TOKEN_ENV})")
    common.add_argument("-v", "--verbose", action="store_true", help="Debug logging to stderr")

    parser = argparse.ArgumentParser(
        prog="repo-manager",
        description="Create repositories and manage their collaborators in a GitHub organization.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
examples:
  repo-manager create                  # create a repo and invite users
  repo-manager manage                  # pick a repo by prefix and edit access
  repo-manager manage --repo team-api  # manage a specific repo
  repo-manager manage -n               # dry-run (show plan only)
""",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    subparsers = parser.add_subparsers(dest="command", metavar="COMMAND")

    subparsers.add_parser("create", parents=[common], help="Create a new repository")

    manage = subparsers.add_parser("manage", parents=[common], help="Manage an existing repository")
    manage.add_argument("-r", "--repo", metavar="NAME", help="Repository name to manage")
    manage.add_argument("-n", "--dry-run", action="store_true", help="Show the plan without making changes")
    return parser


def run(argv: list[str] | None = None) -> int:
    if argv is None:
        argv = sys.argv[1:]
    argv = _normalize_argv(argv)

    parser = _build_parser()
    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return 2

    _configure_logging(args.verbose)

    try:
        config = load_config(args.config)
    except (ValueError, FileNotFoundError) as exc:
        console.print(f"[red]error:[/red] {escape(str(exc))}")
        return 1

    token = args.github_token or os.getenv(TOKEN_ENV)
    if not token:
        console.print(f"[red]error:[/red] GitHub token is required. Set {TOKEN_ENV} or use --github-token.")
        return 1

    dry_run = getattr(args, "dry_run", False)
    _print_header(config, "dry-run" if dry_run else args.command)

    with GitHubClient(token, base_url=config.api_url) as client:
        reconciler = Reconciler(client, RichPrompter(console), config, output=console, dry_run=dry_run)
        if args.command == "create":
            report = reconciler.create()
        else:
            report = reconciler.manage(args.repo)

    return _exit_code(report)


def main() -> None:
    try:
        raise SystemExit(run())
    except KeyboardInterrupt:
        console.print()
        sys.exit(130)
    except EOFError:
        console.print()
        console.print("[red]error:[/red] input closed before the prompt was answered")
        sys.exit(1)


if __name__ == "__main__":
    main()
