"""
Directory listing rendering for dirserve
"""

import posixpath
from pathlib import Path
from typing import List, Optional
from urllib.parse import quote

from jinja2 import Environment, FileSystemLoader, select_autoescape

from .models import FileInfo
from .utils import format_timestamp, printable_name

templates_dir = Path(__file__).parent / "templates"

env = Environment(
    loader=FileSystemLoader(str(templates_dir)),
    autoescape=select_autoescape(["html"], default=True),
)


def parent_href(request_path: str) -> Optional[str]:
    """Link to the parent directory, None at the root"""
    if request_path in ("", "/"):
        return None
    parent = posixpath.dirname(request_path.rstrip('/'))
    if not parent.endswith('/'):
        parent += '/'
    return quote(parent, errors='surrogateescape')


def render_listing(request_path: str, entries: List[FileInfo]) -> str:
    """
    Render an HTML index for a directory

    Args:
        request_path: Cleaned request path of the directory ("/" for root)
        entries: Visible children, already sorted

    Returns:
        HTML document; names and links are escaped by the template
    """
    rows = []
    for entry in entries:
        href = entry.path + ('/' if entry.is_dir else '')
        rows.append({
            # Percent-encode the original bytes of undecodable names
            "href": quote(href, errors='surrogateescape'),
            "label": printable_name(entry.name) + ('/' if entry.is_dir else ''),
            "size": entry.size,
            "modified": format_timestamp(entry.modified),
        })

    template = env.get_template("listing.html")
    return template.render(
        request_path=printable_name(request_path),
        parent_href=parent_href(request_path),
        entries=rows,
    )
