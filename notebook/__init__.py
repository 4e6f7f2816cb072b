"""
Secure notebook: question answering over uploaded documents with a
confidential folder that only a verified administrator can unlock.

`notebook_app.py` is the Streamlit entrypoint; `api/` serves the same
components over HTTP.
"""

from __future__ import annotations

__all__ = [
    "access",
    "auth",
    "citations",
    "config",
    "constants",
    "context",
    "documents",
    "engine",
    "files",
    "logger",
    "orchestrator",
    "router",
    "sessions",
    "state",
    "ui",
]  # pragma: no cover
