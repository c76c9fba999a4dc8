from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, Flag, auto
from functools import total_ordering
from typing import Mapping


# =============================================================================
# Access Levels
# =============================================================================


@total_ordering
class AccessLevel(Enum):
    """Repository access level, ordered read < write < maintain < admin."""

    READ = "read"
    WRITE = "write"
    MAINTAIN = "maintain"
    ADMIN = "admin"

    @property
    def rank(self) -> int:
        return _RANKS[self]

    @property
    def api_permission(self) -> str:
        """Name the REST API expects when granting this level."""
        return _API_PERMISSIONS[self]

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, AccessLevel):
            return NotImplemented
        return self.rank < other.rank

    @classmethod
    def from_name(cls, name: str | None) -> AccessLevel | None:
        """Parse a platform role name. Returns None for no access or unknown names."""
        if not name:
            return None
        return _ROLE_NAMES.get(name.strip().lower())


_RANKS = {
    AccessLevel.READ: 0,
    AccessLevel.WRITE: 1,
    AccessLevel.MAINTAIN: 2,
    AccessLevel.ADMIN: 3,
}

_API_PERMISSIONS = {
    AccessLevel.READ: "pull",
    AccessLevel.WRITE: "push",
    AccessLevel.MAINTAIN: "maintain",
    AccessLevel.ADMIN: "admin",
}

# GitHub uses read/write in role_name and pull/push in the legacy fields
_ROLE_NAMES = {
    "admin": AccessLevel.ADMIN,
    "maintain": AccessLevel.MAINTAIN,
    "write": AccessLevel.WRITE,
    "push": AccessLevel.WRITE,
    "triage": AccessLevel.READ,
    "read": AccessLevel.READ,
    "pull": AccessLevel.READ,
}

DEFAULT_INVITE_LEVEL = AccessLevel.WRITE


def classify(flags: Mapping[str, bool] | None) -> AccessLevel:
    """Collapse independent permission flags into a single level.

    Priority is admin > maintain > write > read. Anything else, including an
    empty or missing mapping, is read.
    """
    if not flags:
        return AccessLevel.READ
    if flags.get("admin"):
        return AccessLevel.ADMIN
    if flags.get("maintain"):
        return AccessLevel.MAINTAIN
    if flags.get("push") or flags.get("write"):
        return AccessLevel.WRITE
    return AccessLevel.READ


def is_admin(level: AccessLevel | None) -> bool:
    return level is AccessLevel.ADMIN


# =============================================================================
# Data Models
# =============================================================================


class Provenance(Flag):
    """Where a collaborator's access was observed."""

    NONE = 0
    DECLARED = auto()  # listed in the config
    EXPLICIT = auto()  # in the direct collaborator listing
    IMPLICIT = auto()  # only visible through a permission lookup


@dataclass(frozen=True)
class Collaborator:
    """A user with current access to a repository."""
    username: str
    level: AccessLevel = AccessLevel.READ
    provenance: Provenance = Provenance.EXPLICIT

    @property
    def is_admin(self) -> bool:
        return is_admin(self.level)

    @property
    def is_declared(self) -> bool:
        return bool(self.provenance & Provenance.DECLARED)


@dataclass(frozen=True)
class ReconciliationPlan:
    """Usernames to grant and revoke. The two tuples never overlap."""
    to_add: tuple[str, ...] = ()
    to_remove: tuple[str, ...] = ()
    invite_level: AccessLevel = DEFAULT_INVITE_LEVEL

    @property
    def is_empty(self) -> bool:
        return not self.to_add and not self.to_remove


@dataclass(frozen=True)
class RepoInfo:
    name: str
    full_name: str = ""
    private: bool = True
    description: str = ""


@dataclass
class ManagerConfig:
    """Organization, naming prefix and declared users, loaded once per run."""
    organization: str
    prefix: str = ""
    users: list[str] = field(default_factory=list)
    # REST endpoint of the one GitHub installation in use (GitHub Enterprise Server)
    api_url: str = "https://api.github.com"
    source: str = ""
