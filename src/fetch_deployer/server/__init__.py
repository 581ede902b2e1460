"""FastAPI server adapter for fetch-deployer.

Design intent:
- Keep deployment logic in `fetch_deployer.*`
- Keep HTTP concerns (form parsing, status codes, JSON bodies) here
"""

from __future__ import annotations

__all__ = ["create_app"]

from fetch_deployer.server.app import create_app
