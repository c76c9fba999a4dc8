from __future__ import annotations

import logging
from typing import Any, Protocol
from urllib.parse import quote

import httpx

from repomanager.errors import AuthError, HostingAPIError, NotFoundError, TransientAPIError
from repomanager.models import AccessLevel, RepoInfo

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.github.com"
PAGE_SIZE = 100


class HostingAPI(Protocol):
    """Capabilities the reconciler needs from the hosting platform."""

    def validate_credential(self) -> str: ...

    def create_repository(self, org: str, name: str) -> RepoInfo: ...

    def get_repository(self, org: str, name: str) -> RepoInfo: ...

    def list_repositories(self, org: str, prefix: str = "") -> list[RepoInfo]: ...

    def list_collaborators(self, org: str, repo: str) -> list[tuple[str, dict[str, bool]]]: ...

    def get_permission_level(self, org: str, repo: str, username: str) -> AccessLevel | None: ...

    def add_collaborator(self, org: str, repo: str, username: str, level: AccessLevel) -> None: ...

    def remove_collaborator(self, org: str, repo: str, username: str) -> None: ...


# =============================================================================
# Response Helpers
# =============================================================================


def _error_details(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text.strip()[:200] or "unknown error"
    if isinstance(payload, dict) and payload.get("message"):
        return str(payload["message"])
    return "unknown error"


def _raise_for_status(response: httpx.Response, *, what: str) -> None:
    status = response.status_code
    if status < 400:
        return

    message = f"Failed to {what}: HTTP {status}: {_error_details(response)}"
    if status == 401:
        raise AuthError(message, status)
    if status == 404:
        raise NotFoundError(message, status)
    if status == 429 or status >= 500:
        raise TransientAPIError(message, status)
    if status == 403 and response.headers.get("x-ratelimit-remaining") == "0":
        raise TransientAPIError(message, status)
    raise HostingAPIError(message, status)


def _segment(value: str) -> str:
    """Percent-encode a value used as a single path segment."""
    return quote(value, safe="")


def _collaborator_path(org: str, repo: str, username: str) -> str:
    return f"/repos/{_segment(org)}/{_segment(repo)}/collaborators/{_segment(username)}"


def _repo_info(item: dict[str, Any]) -> RepoInfo:
    return RepoInfo(
        name=item.get("name", ""),
        full_name=item.get("full_name", ""),
        private=bool(item.get("private", True)),
        description=item.get("description") or "",
    )


# =============================================================================
# GitHub Client
# =============================================================================


class GitHubClient:
    """Blocking GitHub REST client. One request at a time, no retries."""

    def __init__(
        self,
        token: str,
        base_url: str = DEFAULT_API_URL,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._client = httpx.Client(
            base_url=self.base_url,
            timeout=timeout,
            transport=transport,
            headers={
                "Authorization": f"Bearer {token}",
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": "2022-11-28",
                "User-Agent": "repo-manager",
            },
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> GitHubClient:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def _request(
        self,
        method: str,
        url: str,
        *,
        what: str,
        params: dict[str, Any] | None = None,
        body: dict[str, Any] | None = None,
    ) -> httpx.Response:
        logger.debug("%s %s params=%s", method, url, params)
        try:
            response = self._client.request(method, url, params=params, json=body)
        except httpx.RequestError as exc:
            raise TransientAPIError(f"Network error while trying to {what}: {exc}") from exc
        logger.debug("Response %s from %s", response.status_code, response.url)
        _raise_for_status(response, what=what)
        return response

    def _json(self, method: str, url: str, *, what: str, **kwargs: Any) -> Any:
        response = self._request(method, url, what=what, **kwargs)
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise HostingAPIError(f"Unexpected non-JSON output while trying to {what}") from exc

    def _paginate(self, url: str, *, what: str, params: dict[str, Any] | None = None) -> list[Any]:
        """Follow Link rel="next" headers until the listing is exhausted."""
        items: list[Any] = []
        next_url: str | None = url
        next_params: dict[str, Any] | None = {"per_page": PAGE_SIZE, **(params or {})}
        while next_url:
            response = self._request("GET", next_url, what=what, params=next_params)
            try:
                page = response.json() if response.content else []
            except ValueError as exc:
                raise HostingAPIError(f"Unexpected non-JSON output while trying to {what}") from exc
            if not isinstance(page, list):
                raise HostingAPIError(f"Unexpected response while trying to {what}: expected a list")
            items.extend(page)
            next_url = response.links.get("next", {}).get("url")
            # The next link already carries the query string
            next_params = None
        return items

    # -------------------------------------------------------------------------
    # Hosting API
    # -------------------------------------------------------------------------

    def validate_credential(self) -> str:
        """Return the authenticated login."""
        data = self._json("GET", "/user", what="validate token")
        login = (data or {}).get("login")
        if not login:
            raise AuthError("Failed to validate token: no login in response")
        return login

    def create_repository(self, org: str, name: str) -> RepoInfo:
        data = self._json(
            "POST", f"/orgs/{_segment(org)}/repos",
            what=f"create repository {org}/{name}",
            body={"name": name, "private": True},
        )
        return _repo_info(data or {"name": name, "full_name": f"{org}/{name}"})

    def get_repository(self, org: str, name: str) -> RepoInfo:
        data = self._json("GET", f"/repos/{_segment(org)}/{_segment(name)}", what=f"fetch repository {org}/{name}")
        return _repo_info(data or {"name": name})

    def list_repositories(self, org: str, prefix: str = "") -> list[RepoInfo]:
        items = self._paginate(f"/orgs/{_segment(org)}/repos", what=f"list repositories in {org}")
        repos = [_repo_info(item) for item in items if isinstance(item, dict)]
        return [r for r in repos if r.name and r.name.startswith(prefix)]

    def list_collaborators(self, org: str, repo: str) -> list[tuple[str, dict[str, bool]]]:
        items = self._paginate(
            f"/repos/{_segment(org)}/{_segment(repo)}/collaborators",
            what="fetch collaborators",
            params={"affiliation": "direct"},
        )
        collabs: list[tuple[str, dict[str, bool]]] = []
        for item in items:
            login = item.get("login", "") if isinstance(item, dict) else ""
            if login:
                collabs.append((login, dict(item.get("permissions") or {})))
        return collabs

    def get_permission_level(self, org: str, repo: str, username: str) -> AccessLevel | None:
        data = self._json(
            "GET", f"{_collaborator_path(org, repo, username)}/permission",
            what=f"fetch permission for {username}",
        ) or {}
        # role_name distinguishes maintain/triage; permission is the legacy field
        return AccessLevel.from_name(data.get("role_name")) or AccessLevel.from_name(data.get("permission"))

    def add_collaborator(self, org: str, repo: str, username: str, level: AccessLevel) -> None:
        self._request(
            "PUT", _collaborator_path(org, repo, username),
            what=f"add {username}",
            body={"permission": level.api_permission},
        )

    def remove_collaborator(self, org: str, repo: str, username: str) -> None:
        self._request("DELETE", _collaborator_path(org, repo, username), what=f"remove {username}")
