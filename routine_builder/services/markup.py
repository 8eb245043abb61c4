from __future__ import annotations

import re


_LINK_RE = re.compile(r"\[([^\]]+)\]\((https?://[^\s)]+)\)")


def render_markup(content: str) -> str:
    """Line breaks become <br>, ``[label](http://...)`` becomes an anchor.

    Nothing is escaped: replies come from the operator-configured endpoint
    and are passed through as-is.
    """
    html = content.replace("\n", "<br>")
    return _LINK_RE.sub(r'<a href="\2" target="_blank" rel="noopener noreferrer">\1</a>', html)
