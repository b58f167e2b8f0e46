"""Naming and path utilities - small helper module."""

import re
from typing import Callable, Optional

ACCOUNT_PATH_ROOT = "/account"
PROJECT_PATH_ROOT = "/projects"

_NON_SLUG = re.compile(r"[^a-z0-9]+")


def slugify(name: str) -> str:
    """Lowercase, dash-separated form of *name* (``"Code Standards"`` -> ``"code-standards"``)."""
    slug = _NON_SLUG.sub("-", name.strip().lower()).strip("-")
    return slug or "item"


def unique_slug(base: str, exists: Callable[[str], bool]) -> str:
    """Return *base*, or *base* with the first free ``-N`` suffix."""
    candidate = base
    suffix = 2
    while exists(candidate):
        candidate = f"{base}-{suffix}"
        suffix += 1
    return candidate


def folder_path(parent_path: Optional[str], name: str, project_id: Optional[str]) -> str:
    """Display path of a folder named *name* under *parent_path*.

    Root folders live under ``/account`` or ``/projects/<project id>``.
    """
    if parent_path:
        base = parent_path
    elif project_id:
        base = f"{PROJECT_PATH_ROOT}/{project_id}"
    else:
        base = ACCOUNT_PATH_ROOT
    return f"{base}/{slugify(name)}"


def rule_path(folder_path_: str, name: str) -> str:
    return f"{folder_path_}/{name.strip()}"
