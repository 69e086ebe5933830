"""CLI entry point for the local development processing server."""

import argparse

from duet.config import settings


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="duet-dev-server",
        description="Duet dev server: in-memory video processing backend",
    )
    parser.add_argument("--host", default=settings.host, help=f"Bind host (default: {settings.host})")
    parser.add_argument("--port", type=int, default=settings.port, help=f"Bind port (default: {settings.port})")
    args = parser.parse_args(argv)

    import uvicorn

    uvicorn.run("duet.api.app:create_dev_app", factory=True, host=args.host, port=args.port)


if __name__ == "__main__":
    main()
