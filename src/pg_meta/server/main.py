"""Main entry point for the metadata gateway.

Configured as the ``pg-meta`` script in pyproject.toml. The application is
built by ``create_app`` at startup, reading ``$PG_META_CONFIG``.
"""

import argparse

import uvicorn


def main() -> None:
    """Start the gateway using uvicorn.

    Usage:
        Run with defaults: pg-meta
        Run on a custom address: pg-meta --host 127.0.0.1 --port 1337
    """
    parser = argparse.ArgumentParser(description="Start the PostgreSQL metadata gateway")
    parser.add_argument(
        "--host", default="0.0.0.0", help="Interface to bind (default: 0.0.0.0)"
    )
    parser.add_argument(
        "--port", type=int, default=1337, help="Port to run the server on (default: 1337)"
    )
    args = parser.parse_args()

    uvicorn.run(
        "pg_meta.server.app:create_app",
        factory=True,
        host=args.host,
        port=args.port,
    )


if __name__ == "__main__":
    main()
