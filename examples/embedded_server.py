#!/usr/bin/env python3
"""Example: a WebDAV share mounted inside a larger Starlette application."""

import tempfile
from pathlib import Path

import uvicorn
from starlette.applications import Starlette
from starlette.responses import PlainTextResponse
from starlette.routing import Mount, Route

from minidav import Handler, LocalStorage


async def homepage(request):
    return PlainTextResponse("The WebDAV share lives under /webdav/\n")


if __name__ == "__main__":
    # Create temporary directory for data
    temp_dir = Path(tempfile.mkdtemp(prefix="webdav_"))
    (temp_dir / "hello.txt").write_text("Hello from minidav\n")
    print(f"Using data directory: {temp_dir}")

    # The handler sees the full request path, so it is told where it is mounted
    handler = Handler(LocalStorage(temp_dir), base_uri="/webdav/")

    app = Starlette(
        routes=[
            Route("/", homepage),
            Mount("/webdav", app=handler),
        ]
    )

    print("\nStarting WebDAV server on http://localhost:8000")
    print("\nTry:")
    print("  curl -X PROPFIND -H 'Depth: 1' http://localhost:8000/webdav/")
    print("  curl -H 'Range: bytes=0-4' http://localhost:8000/webdav/hello.txt")
    print("\nPress Ctrl+C to stop")

    uvicorn.run(app, host="0.0.0.0", port=8000)
