"""
main.py: Server launcher and entry point.

Run this file to start the Portly gate console API:

    python main.py

This file does NOT contain application logic. See app.py for the FastAPI
application, service wiring, and startup sequence.

Direct uvicorn usage:
    uvicorn app:app --reload
"""

from __future__ import annotations

import uvicorn

from portly.utils.config import get_settings


def main() -> None:
    """Start the Portly API server."""
    settings = get_settings()
    base_url = f"http://{settings.host}:{settings.port}"
    print("=" * 60)
    print(f"  {settings.app_name}")
    print("=" * 60)
    print(f"  Server   : {base_url}")
    print(f"  API docs : {base_url}/docs")
    print("=" * 60)

    uvicorn.run(
        "app:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
