"""Entry point for running the sync API with Uvicorn."""
from __future__ import annotations

import os

import uvicorn


def main() -> None:
  port = int(os.getenv("CONNECTSPHERE_PORT", "8000"))
  reload = os.getenv("UVICORN_RELOAD", "false").lower() == "true"
  uvicorn.run("connectsphere.main:app", host="127.0.0.1", port=port, reload=reload)


if __name__ == "__main__":
  main()
