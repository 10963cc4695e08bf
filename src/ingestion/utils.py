from __future__ import annotations

from urllib.parse import urljoin


def resolve_url(base_url: str, path: str) -> str:
    """
    Join a resource path onto the data base URL.

    Absolute URLs pass through unchanged; leading slashes on `path` do not
    escape the base path.
    """
    if "://" in path:
        return path
    base = base_url if base_url.endswith("/") else base_url + "/"
    return urljoin(base, path.lstrip("/"))
