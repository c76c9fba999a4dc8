from __future__ import annotations

import re
from typing import Iterable, Sequence

from repomanager.models import (
    DEFAULT_INVITE_LEVEL,
    AccessLevel,
    Collaborator,
    ReconciliationPlan,
)

_LABEL_SEPARATOR = " ("
_LOGIN_RE = re.compile(r"[A-Za-z0-9][A-Za-z0-9-]{0,38}")


# =============================================================================
# Label Projection
# =============================================================================


def format_label(username: str, level: AccessLevel | None = None) -> str:
    """Render a username for display, e.g. ``alice (write)``."""
    if level is None:
        return username
    return f"{username}{_LABEL_SEPARATOR}{level.value})"


def normalize_username(label: str) -> str:
    """Strip a trailing role annotation and whitespace from a display label."""
    value = label.strip()
    if value.endswith(")") and _LABEL_SEPARATOR in value:
        value = value.rsplit(_LABEL_SEPARATOR, 1)[0]
    return value.strip()


def is_valid_login(username: str) -> bool:
    return bool(_LOGIN_RE.fullmatch(username))


def normalize_selection(labels: Iterable[str]) -> list[str]:
    """Normalize labels to bare usernames, dropping blanks and repeats."""
    seen: set[str] = set()
    users: list[str] = []
    for label in labels:
        username = normalize_username(label)
        if username and username not in seen:
            seen.add(username)
            users.append(username)
    return users


# =============================================================================
# Plan Computation
# =============================================================================


def compute_plan(
    canonical: Sequence[Collaborator],
    desired: Iterable[str],
    invite_level: AccessLevel = DEFAULT_INVITE_LEVEL,
) -> ReconciliationPlan:
    """Compute the grants and revocations that turn current access into the desired set.

    Admins are never revoked, even when deselected.
    """
    wanted = normalize_selection(desired)
    wanted_set = set(wanted)
    current = {c.username for c in canonical}

    to_add = tuple(u for u in wanted if u not in current)
    to_remove = tuple(
        c.username for c in canonical
        if c.username not in wanted_set and not c.is_admin
    )
    return ReconciliationPlan(to_add=to_add, to_remove=to_remove, invite_level=invite_level)


def admins_deselected(canonical: Sequence[Collaborator], desired: Iterable[str]) -> list[Collaborator]:
    """Admins the selection would drop. They are kept regardless."""
    wanted = set(normalize_selection(desired))
    return [c for c in canonical if c.is_admin and c.username not in wanted]
