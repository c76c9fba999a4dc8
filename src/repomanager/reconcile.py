from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Sequence

from rich.console import Console
from rich.markup import escape

from repomanager.diff import (
    admins_deselected,
    compute_plan,
    format_label,
    is_valid_login,
    normalize_username,
)
from repomanager.errors import HostingAPIError, NotFoundError, UserAbortedError
from repomanager.github import HostingAPI
from repomanager.models import AccessLevel, Collaborator, ManagerConfig, ReconciliationPlan
from repomanager.prompts import Prompter
from repomanager.resolver import resolve_membership

logger = logging.getLogger(__name__)

console = Console()


class ReconcileState(Enum):
    FETCHING = "fetching"
    PRESENTING = "presenting"
    ADMIN_WARNING = "admin_warning"
    COLLECTING = "collecting"
    DIFFING = "diffing"
    CONFIRMING = "confirming"
    APPLYING = "applying"
    DONE = "done"
    ABORTED = "aborted"


@dataclass(frozen=True)
class OperationOutcome:
    username: str
    action: str  # "add" or "remove"
    ok: bool
    detail: str = ""


@dataclass
class ReconcileReport:
    """What a single run did."""
    state: ReconcileState | None = None
    repo: str = ""
    plan: ReconciliationPlan | None = None
    outcomes: list[OperationOutcome] = field(default_factory=list)
    error: str | None = None
    aborted_by_user: bool = False

    @property
    def succeeded(self) -> int:
        return sum(1 for o in self.outcomes if o.ok)

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if not o.ok)


# =============================================================================
# Selection Helpers
# =============================================================================


def build_options(
    canonical: Sequence[Collaborator], declared: Sequence[str]
) -> tuple[list[str], list[str], dict[str, str]]:
    """
    Build (options, defaults, label -> username) for the membership prompt.

    Declared users come first, annotated with their current role when they
    have one. Every current collaborator is pre-selected.
    """
    current = {c.username: c for c in canonical}
    options: list[str] = []
    defaults: list[str] = []
    by_label: dict[str, str] = {}

    def add_option(username: str) -> None:
        collab = current.get(username)
        label = format_label(username, collab.level if collab else None)
        options.append(label)
        by_label[label] = username
        if collab is not None:
            defaults.append(label)

    declared_users = list(dict.fromkeys(declared))
    for username in declared_users:
        add_option(username)
    declared_set = set(declared_users)
    for collab in canonical:
        if collab.username not in declared_set:
            add_option(collab.username)

    return options, defaults, by_label


def merge_additions(selection: Sequence[str], text: str) -> tuple[list[str], list[str]]:
    """
    Append comma-separated usernames from free text, skipping blanks and repeats.

    Returns the merged selection and the entries rejected as invalid logins.
    """
    merged = list(selection)
    rejected: list[str] = []
    seen = {normalize_username(s) for s in selection}
    for raw in text.split(","):
        username = normalize_username(raw).lstrip("@").strip()
        if not username or username in seen:
            continue
        if not is_valid_login(username):
            rejected.append(username)
            continue
        seen.add(username)
        merged.append(username)
    return merged, rejected


# =============================================================================
# Reconciler
# =============================================================================


class Reconciler:
    """Drives fetch -> present -> confirm -> apply for one repository."""

    def __init__(
        self,
        api: HostingAPI,
        prompter: Prompter,
        config: ManagerConfig,
        *,
        output: Console | None = None,
        dry_run: bool = False,
    ) -> None:
        self.api = api
        self.prompter = prompter
        self.config = config
        self.console = output or console
        self.dry_run = dry_run
        self.state: ReconcileState | None = None

    @property
    def org(self) -> str:
        return self.config.organization

    def _enter(self, state: ReconcileState) -> None:
        logger.debug("state %s -> %s", self.state.value if self.state else "start", state.value)
        self.state = state

    # -------------------------------------------------------------------------
    # Flows
    # -------------------------------------------------------------------------

    def manage(self, repo_name: str | None = None) -> ReconcileReport:
        """Reconcile the collaborators of an existing repository."""
        report = ReconcileReport()
        try:
            self._validate()

            self._enter(ReconcileState.FETCHING)
            report.repo = self._select_repository(repo_name)
            canonical = self._fetch_membership(report.repo)

            self._enter(ReconcileState.PRESENTING)
            options, defaults, by_label = build_options(canonical, self.config.users)
            chosen = self.prompter.ask_select_many(
                "Manage users (deselect to remove, select to add)", options, defaults,
            )
            selection = [by_label.get(label, normalize_username(label)) for label in chosen]

            self._enter(ReconcileState.ADMIN_WARNING)
            for admin in admins_deselected(canonical, selection):
                self.console.print(
                    f"  [yellow]warning:[/yellow] {escape(admin.username)} has admin rights "
                    "(and might be the owner). They will NOT be removed to prevent accidental lockout."
                )

            self._enter(ReconcileState.COLLECTING)
            selection = self._collect_more(selection)

            self._enter(ReconcileState.DIFFING)
            report.plan = compute_plan(canonical, selection)

            self._enter(ReconcileState.CONFIRMING)
            self._print_recap(report.repo, report.plan)
            if report.plan.is_empty:
                self.console.print("  [green]✓ no changes detected[/green]")
            elif self._confirm("Proceed with changes?"):
                self._enter(ReconcileState.APPLYING)
                report.outcomes = self._apply(report.repo, report.plan)
                self._print_summary(report)
            self._enter(ReconcileState.DONE)
        except UserAbortedError:
            self._abort(report, None)
        except HostingAPIError as exc:
            self._abort(report, str(exc))
        report.state = self.state
        return report

    def create(self) -> ReconcileReport:
        """Create a repository and invite the selected users."""
        report = ReconcileReport()
        try:
            self._validate()

            report.repo = self._ask_repo_name()

            self._enter(ReconcileState.COLLECTING)
            selection: list[str] = []
            if self.config.users:
                selection = self.prompter.ask_select_many(
                    "Select users to add", self.config.users, self.config.users,
                )
            selection = self._collect_more(selection)

            self._enter(ReconcileState.DIFFING)
            report.plan = compute_plan((), selection)

            self._enter(ReconcileState.CONFIRMING)
            self._print_recap(report.repo, report.plan, creating=True)
            if self._confirm("Proceed with creation?"):
                self._enter(ReconcileState.APPLYING)
                self.console.print(f"  [dim]creating repository[/dim] {escape(self.org)}/{escape(report.repo)}")
                self.api.create_repository(self.org, report.repo)
                self.console.print(f"  [green]✓[/green] {'repository':<20} [dim]created (private)[/dim]")
                report.outcomes = self._apply(report.repo, report.plan)
                self._print_summary(report)
            self._enter(ReconcileState.DONE)
        except UserAbortedError:
            self._abort(report, None)
        except HostingAPIError as exc:
            self._abort(report, str(exc))
        report.state = self.state
        return report

    # -------------------------------------------------------------------------
    # Steps
    # -------------------------------------------------------------------------

    def _validate(self) -> None:
        login = self.api.validate_credential()
        self.console.print(f"  [dim]authenticated as[/dim] {escape(login)}")
        self.console.print()

    def _select_repository(self, repo_name: str | None) -> str:
        if repo_name:
            try:
                self.api.get_repository(self.org, repo_name)
            except NotFoundError as exc:
                raise NotFoundError(
                    f"repository '{repo_name}' not found in organization '{self.org}' (or you don't have access)",
                    exc.status_code,
                ) from exc
            return repo_name

        prefix = self.config.prefix
        repos = self.api.list_repositories(self.org, prefix)
        if not repos:
            raise NotFoundError(f"no repositories in '{self.org}' matching prefix '{prefix}'")
        return self.prompter.ask_select_one("Select repository to manage", [r.name for r in repos])

    def _fetch_membership(self, repo: str) -> tuple[Collaborator, ...]:
        explicit = self.api.list_collaborators(self.org, repo)

        def lookup(username: str) -> AccessLevel | None:
            return self.api.get_permission_level(self.org, repo, username)

        return resolve_membership(self.config.users, explicit, lookup)

    def _ask_repo_name(self) -> str:
        prefix = self.config.prefix
        name = ""
        while not name:
            name = self.prompter.ask_text("Repository name").strip()
            if prefix and name.startswith(prefix):
                self.console.print(
                    f"  [yellow]warning:[/yellow] prefix '{escape(prefix)}' is already present in the name. "
                    "It will be stripped and re-added."
                )
                name = name[len(prefix):]
            if not name:
                self.console.print("[red]error:[/red] repository name is required")
        return f"{prefix}{name}"

    def _collect_more(self, selection: list[str]) -> list[str]:
        if not self.prompter.ask_confirm("Add more users?", default=False):
            return selection
        merged, rejected = merge_additions(selection, self.prompter.ask_text("Enter usernames (comma separated)"))
        for username in rejected:
            self.console.print(f"  [yellow]warning:[/yellow] skipping invalid username '{escape(username)}'")
        return merged

    def _confirm(self, prompt: str) -> bool:
        """Return False for a dry run, raise UserAbortedError on decline."""
        if self.dry_run:
            self.console.print("  [blue]dry-run:[/blue] no changes applied")
            return False
        if not self.prompter.ask_confirm(prompt, default=False):
            raise UserAbortedError(prompt)
        return True

    def _apply(self, repo: str, plan: ReconciliationPlan) -> list[OperationOutcome]:
        """Removals first, then additions. A failure never stops the batch."""
        outcomes: list[OperationOutcome] = []
        for username in plan.to_remove:
            outcomes.append(self._attempt(
                "remove", username, "removed",
                lambda u=username: self.api.remove_collaborator(self.org, repo, u),
            ))
        for username in plan.to_add:
            outcomes.append(self._attempt(
                "add", username, f"added [{plan.invite_level.value}]",
                lambda u=username: self.api.add_collaborator(self.org, repo, u, plan.invite_level),
            ))
        return outcomes

    def _attempt(self, action: str, username: str, done: str, call: Callable[[], None]) -> OperationOutcome:
        try:
            call()
        except HostingAPIError as exc:
            logger.debug("%s %s failed", action, username, exc_info=True)
            outcome = OperationOutcome(username, action, False, str(exc))
            self.console.print(f"  [red]✗[/red] {escape(username):<20} [red]{escape(outcome.detail)}[/red]")
        else:
            outcome = OperationOutcome(username, action, True, done)
            self.console.print(f"  [green]✓[/green] {escape(username):<20} [dim]{escape(done)}[/dim]")
        return outcome

    def _abort(self, report: ReconcileReport, error: str | None) -> None:
        self._enter(ReconcileState.ABORTED)
        if error is None:
            report.aborted_by_user = True
            self.console.print("  [yellow]aborted[/yellow]")
        else:
            report.error = error
            self.console.print(f"[red]error:[/red] {escape(error)}")

    # -------------------------------------------------------------------------
    # Output
    # -------------------------------------------------------------------------

    def _print_recap(self, repo: str, plan: ReconciliationPlan, *, creating: bool = False) -> None:
        self.console.print()
        self.console.print(f"  [dim]repository[/dim]  {escape(self.org)}/{escape(repo)}")
        if not creating:
            removing = ", ".join(plan.to_remove) or "-"
            self.console.print(f"  [dim]remove[/dim]      [red]{escape(removing)}[/red]")
        adding = ", ".join(plan.to_add) or "-"
        self.console.print(f"  [dim]add[/dim]         [green]{escape(adding)}[/green] [dim]({plan.invite_level.value})[/dim]")
        self.console.print()

    def _print_summary(self, report: ReconcileReport) -> None:
        self.console.print()
        self.console.print("  " + "─" * 50, style="dim")
        added = sum(1 for o in report.outcomes if o.ok and o.action == "add")
        removed = sum(1 for o in report.outcomes if o.ok and o.action == "remove")
        parts = []
        if added:
            parts.append(f"[green]{added} added[/green]")
        if removed:
            parts.append(f"[yellow]{removed} removed[/yellow]")
        if report.failed:
            parts.append(f"[red]{report.failed} failed[/red]")
        summary = " · ".join(parts) if parts else "[dim]nothing to do[/dim]"
        self.console.print(f"  [bold]done[/bold]  {summary}")
        self.console.print()
