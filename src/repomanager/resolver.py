from __future__ import annotations

import logging
from typing import Callable, Iterable, Mapping, Sequence

from repomanager.errors import HostingAPIError
from repomanager.models import AccessLevel, Collaborator, Provenance, classify

logger = logging.getLogger(__name__)

PermissionLookup = Callable[[str], AccessLevel | None]
ExplicitListing = Iterable[tuple[str, Mapping[str, bool]]]


def _lookup_implicit(lookup: PermissionLookup, username: str) -> AccessLevel | None:
    try:
        return lookup(username)
    except HostingAPIError as exc:
        logger.debug("permission lookup for %s failed, treating as no access: %s", username, exc)
        return None


def resolve_membership(
    declared: Sequence[str],
    explicit: ExplicitListing,
    lookup: PermissionLookup,
) -> tuple[Collaborator, ...]:
    """
    Merge declared users, the direct collaborator listing and implicit access
    into one canonical view of who currently has access.

    Declared users come first in config order, followed by the remaining
    explicit collaborators in the order the platform returned them. Declared
    users missing from the listing are looked up once; a failed lookup only
    means they are not counted as current.
    """
    listing: dict[str, AccessLevel] = {}
    for username, flags in explicit:
        if username and username not in listing:
            listing[username] = classify(flags)

    resolved: list[Collaborator] = []
    seen: set[str] = set()

    for username in declared:
        if username in seen:
            continue
        seen.add(username)

        if username in listing:
            resolved.append(Collaborator(
                username=username,
                level=listing[username],
                provenance=Provenance.DECLARED | Provenance.EXPLICIT,
            ))
            continue

        level = _lookup_implicit(lookup, username)
        if level is not None:
            resolved.append(Collaborator(
                username=username,
                level=level,
                provenance=Provenance.DECLARED | Provenance.IMPLICIT,
            ))

    for username, level in listing.items():
        if username in seen:
            continue
        resolved.append(Collaborator(username=username, level=level, provenance=Provenance.EXPLICIT))

    return tuple(resolved)
