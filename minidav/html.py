"""HTML directory index, for people browsing the server with a web browser."""

from __future__ import annotations

from html import escape
from typing import Any
from urllib.parse import quote

from .webdav import COLLECTION, GET_CONTENT_LENGTH, GET_CONTENT_TYPE, PROP_THUMB_URL, RESOURCE_TYPE

LANGUAGE_STRINGS = {
    "title": "Files",
    "back": "Parent",
    "empty": "There are no files in this directory.",
    "bytes_unit": "B",
}

STYLE = """<style>
body { font-size: 1.1em; font-family: Arial, Helvetica, sans-serif; }
table { border-collapse: collapse; }
th, td { padding: .5em; text-align: left; border: 2px solid #ccc; }
span { font-size: 40px; line-height: 40px; }
td img { max-width: 100px; max-height: 100px; }
b { font-size: 1.4em; }
td:nth-child(1) { text-align: center; }
</style>"""


def format_bytes(size: int, unit: str = LANGUAGE_STRINGS["bytes_unit"]) -> str:
    """Format a size in bytes for humans, e.g. "1.5 MB"."""
    if size >= 1024**3:
        return f"{round(size / 1024**3, 1)} G{unit}"
    elif size >= 1024**2:
        return f"{round(size / 1024**2, 1)} M{unit}"
    elif size >= 1024:
        return f"{round(size / 1024, 1)} K{unit}"
    return f"{size} {unit}"


def html_directory(
    uri: str,
    members: dict[str, dict[str, Any]],
    strings: dict[str, str] = LANGUAGE_STRINGS,
) -> str:
    """Render the listing of a collection.

    Args:
        uri: Relative path of the collection
        members: Member name to properties
        strings: Translated UI strings
    """
    title = f"{uri.replace('/', ' / ')} - {strings['title']}" if uri else strings["title"]
    out = [
        f"<!DOCTYPE html><html><head>{STYLE}",
        f"<title>{escape(title)}</title></head><body><h1>{escape(title)}</h1><table>",
    ]

    if uri.strip():
        out.append(
            '<tr><td><span>&#x21B2;</span></td>'
            f'<th colspan=3><a href="../"><b>{escape(strings["back"])}</b></a></th></tr>'
        )

    for name, props in members.items():
        link = quote(name)

        if props.get(RESOURCE_TYPE) == COLLECTION:
            out.append(
                '<tr><td><span>&#x1F4C1;</span></td>'
                f'<th colspan=3><a href="{link}/"><b>{escape(name)}</b></a></th></tr>'
            )
            continue

        if props.get(PROP_THUMB_URL):
            icon = f'<a href="{link}"><img src="{escape(str(props[PROP_THUMB_URL]))}" /></a>'
        else:
            icon = "<span>&#x1F5CE;</span>"

        size = props.get(GET_CONTENT_LENGTH)
        out.append(
            f'<tr><td>{icon}</td><th><a href="{link}">{escape(name)}</a></th>'
            f"<td>{escape(str(props.get(GET_CONTENT_TYPE) or ''))}</td>"
            f'<td style="text-align: right">{format_bytes(int(size)) if size is not None else ""}</td></tr>'
        )

    out.append("</table>")

    if not members:
        out.append(f"<p>{escape(strings['empty'])}</p>")

    out.append("</body></html>")
    return "".join(out)
