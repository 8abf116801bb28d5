"""WebDAV server command-line tool."""

import argparse
import sys
from pathlib import Path


def main() -> None:
    """Main entry point for WebDAV server."""
    parser = argparse.ArgumentParser(
        description="Minimal WebDAV server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Serve the current directory
  minidav-server

  # Serve a directory under /webdav/ on a specific port
  minidav-server --port 8080 --base-uri /webdav/ /path/to/directory

The server supports WebDAV class 1, 2 and 3 (RFC 4918), with byte
ranges (RFC 7233) and gzip encoding for downloads. Locks are kept in
memory and are lost on restart.
        """,
    )
    parser.add_argument(
        "--addr",
        default="127.0.0.1",
        help="listening address (default: 127.0.0.1)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=8080,
        help="listening port (default: 8080)",
    )
    parser.add_argument(
        "--base-uri",
        default="/",
        help="path under which files are served (default: /)",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="enable debug logging (logs request/response bodies with formatted XML)",
    )
    parser.add_argument(
        "directory",
        nargs="?",
        default=".",
        help="directory to serve (default: current directory)",
    )

    args = parser.parse_args()

    # Validate directory
    directory = Path(args.directory).resolve()
    if not directory.exists():
        print(f"Error: directory does not exist: {directory}", file=sys.stderr)
        sys.exit(1)
    if not directory.is_dir():
        print(f"Error: path is not a directory: {directory}", file=sys.stderr)
        sys.exit(1)

    if args.debug:
        from minidav.debug import setup_debug_logging

        setup_debug_logging()

    from minidav import LocalStorage, create_app

    app = create_app(LocalStorage(directory), base_uri=args.base_uri, debug=args.debug)

    import uvicorn

    print(f"WebDAV server listening on {args.addr}:{args.port}")
    print(f"Serving directory: {directory} at {args.base_uri}")

    uvicorn.run(
        app,
        host=args.addr,
        port=args.port,
        log_level="debug" if args.debug else "info",
    )


if __name__ == "__main__":
    main()
