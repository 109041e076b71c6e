"""Cookbook auth service entrypoint.

Run with:
  python -m cookbook
"""

import logging
import os

import uvicorn


def main() -> None:
    logging.basicConfig(
        level=os.getenv("COOKBOOK_LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    host = os.getenv("COOKBOOK_HOST", "0.0.0.0")
    port = int(os.getenv("COOKBOOK_PORT", "8000"))
    reload = os.getenv("COOKBOOK_RELOAD", "false").lower() in {"1", "true", "yes", "y"}
    uvicorn.run("cookbook.app:app", host=host, port=port, reload=reload)


if __name__ == "__main__":
    main()
