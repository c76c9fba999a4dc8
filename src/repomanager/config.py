from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml

from repomanager.models import ManagerConfig

DEFAULT_CONFIG_FILES = ("config.yaml", "config.yml")
USER_CONFIG_PATH = Path("~/.repo-manager/config.yaml")
API_URL_ENV = "REPO_MANAGER_API_URL"


def _parse_usernames(values: list[Any]) -> list[str]:
    """Trim, strip leading @ and de-duplicate, keeping order."""
    seen: set[str] = set()
    users: list[str] = []
    for raw in values:
        if not isinstance(raw, (str, int)):
            raise ValueError(f"invalid user entry: {raw!r}")
        user = str(raw).strip()
        if user.startswith("@"):
            user = user[1:].strip()
        if user and user not in seen:
            seen.add(user)
            users.append(user)
    return users


def parse_config(content: str, source: str = "") -> ManagerConfig:
    """
    Parse YAML configuration.

    organization: my-org
    prefix: "team-"
    users:
      - alice
      - "@bob"
    """
    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as exc:
        raise ValueError(f"Invalid YAML in {source or 'config'}: {exc}") from exc

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValueError("YAML must be a dictionary")

    organization = str(data.get("organization") or "").strip()
    if not organization:
        raise ValueError(f"organization is required ({source or 'config'})")

    users = data.get("users") or []
    if not isinstance(users, list):
        raise ValueError("users must be a list")

    api_url = os.getenv(API_URL_ENV) or data.get("api_url") or "https://api.github.com"

    return ManagerConfig(
        organization=organization,
        prefix=str(data.get("prefix") or ""),
        users=_parse_usernames(users),
        api_url=str(api_url),
        source=source,
    )


def _find_config_file(path: str | None) -> Path:
    if path:
        candidate = Path(path).expanduser()
        if not candidate.is_file():
            raise FileNotFoundError(f"config file not found: {path}")
        return candidate

    for filename in DEFAULT_CONFIG_FILES:
        candidate = Path(filename)
        if candidate.is_file():
            return candidate

    candidate = USER_CONFIG_PATH.expanduser()
    if candidate.is_file():
        return candidate

    raise FileNotFoundError(
        f"config file not found (looked for {', '.join(DEFAULT_CONFIG_FILES)} and {USER_CONFIG_PATH})"
    )


def load_config(path: str | None = None) -> ManagerConfig:
    config_path = _find_config_file(path)
    return parse_config(config_path.read_text(), source=str(config_path))
