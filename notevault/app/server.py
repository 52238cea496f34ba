from __future__ import annotations

"""Serve the notes chat API with uvicorn."""

import argparse

import uvicorn

from notevault.app.settings import settings

APP_PATH = "notevault.app.main:app"


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Run the notevault HTTP API.")
    parser.add_argument("--host", default=settings.host, help="Interface to bind.")
    parser.add_argument("--port", type=int, default=settings.port, help="Port to listen on.")
    parser.add_argument("--reload", action="store_true", help="Restart when source files change.")
    args = parser.parse_args(argv)
    uvicorn.run(
        APP_PATH,
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
