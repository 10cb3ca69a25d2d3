"""Entry point for running the reference GraphQL over HTTP server.

Usage:
    python -m gqlhttp_server
    python -m gqlhttp_server --port 4000
    python -m gqlhttp_server --host 0.0.0.0 --port 9000 --path /api/graphql

Set ``GQLHTTP_ENV=production`` to hide internal error details.
"""

from __future__ import annotations

import argparse
import os

import uvicorn

from gqlhttp_pipeline import HandlerOptions
from gqlhttp_server.app import create_app
from gqlhttp_server.schema import build_reference_schema


def main() -> None:
    parser = argparse.ArgumentParser(description="GraphQL over HTTP reference server")
    parser.add_argument("--host", default=os.environ.get("HOST", "127.0.0.1"), help="Bind host")
    parser.add_argument(
        "--port", type=int, default=int(os.environ.get("PORT", "4000")), help="Bind port"
    )
    parser.add_argument("--path", default="/graphql", help="GraphQL endpoint path")
    args = parser.parse_args()

    options = HandlerOptions(schema=build_reference_schema())
    app = create_app(options, path=args.path)

    print(f"GraphQL over HTTP server starting on http://{args.host}:{args.port}{args.path}")
    print(f"Production mode: {'on' if options.production else 'off'}")
    print()
    print("Try:")
    print(f"  curl 'http://{args.host}:{args.port}{args.path}?query=%7Bhello%7D'")
    print()

    uvicorn.run(app, host=args.host, port=args.port, log_level="info")


if __name__ == "__main__":
    main()
