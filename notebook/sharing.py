"""Load a shared notebook backup published at a URL."""

from __future__ import annotations

from typing import Any, Optional
from urllib.parse import urlparse

import httpx

from .constants import SHARED_NOTEBOOK_TIMEOUT_SECONDS
from .documents import WorkspaceImportError
from .logger import LOGGER


def fetch_shared_notebook(
    url: str,
    timeout: float = SHARED_NOTEBOOK_TIMEOUT_SECONDS,
    client: Optional[httpx.Client] = None,
) -> Any:
    """
    Download a workspace backup (the same JSON the export produces).

    Args:
        url: http(s) address of the backup.
        timeout: Request timeout in seconds when no client is given.
        client: Optional httpx client (for testing with mock transports).

    Raises:
        WorkspaceImportError: Bad URL, network or HTTP error, or a body that is not JSON.
    """
    url = url.strip()
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise WorkspaceImportError(f"Shared notebook URL must be http or https: {url!r}")

    try:
        if client is None:
            with httpx.Client(timeout=timeout, follow_redirects=True) as owned:
                response = owned.get(url)
        else:
            response = client.get(url)
        response.raise_for_status()
        data = response.json()
    except httpx.HTTPError as exc:
        LOGGER.error("Failed to load shared notebook from %s: %s", url, exc)
        raise WorkspaceImportError(f"Could not download shared notebook: {exc}") from exc
    except ValueError as exc:
        LOGGER.error("Shared notebook at %s is not JSON: %s", url, exc)
        raise WorkspaceImportError("Shared notebook is not valid JSON") from exc

    LOGGER.info("Fetched shared notebook from %s", parsed.netloc)
    return data


__all__ = ["fetch_shared_notebook"]
