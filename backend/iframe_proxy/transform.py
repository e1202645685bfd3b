"""
Legacy Document Transform

Rewrites a fetched HTML document so it renders correctly inside an iframe
served from our own origin:
- <base href> so relative resources resolve against the original folder
- <meta viewport> for mobile rendering
- A global error guard that silences "is not defined" errors raised by
  legacy pages calling functions of a host page that no longer exists

Each injection is skipped when its tag is already present, so running the
transform on its own output returns it unchanged. Missing anchors degrade
to prefixing instead of failing.
"""

import re
from html import escape
from urllib.parse import SplitResult

HEAD_OPEN_RE = re.compile(r"<head(?:\s[^>]*)?>", re.IGNORECASE)
HEAD_CLOSE_RE = re.compile(r"</head\s*>", re.IGNORECASE)
BASE_TAG_RE = re.compile(r"<base\s", re.IGNORECASE)
VIEWPORT_META_RE = re.compile(r"""<meta[^>]*name=["']viewport["']""", re.IGNORECASE)
ERROR_GUARD_RE = re.compile(r"<script[^>]*data-legacy-error-guard", re.IGNORECASE)

VIEWPORT_META = '<meta name="viewport" content="width=device-width, initial-scale=1.0">'

LEGACY_ERROR_GUARD = """
<script data-legacy-error-guard>
window.onerror = function(msg, src, line, col, err) {
  if (msg && typeof msg === 'string' && msg.includes('is not defined')) {
    console.warn('[Legacy content]', msg);
    return true;
  }
  return false;
};
</script>"""


def get_base_href(parts: SplitResult) -> str:
    """
    Directory of the source document, with trailing slash.

    ``https://host/a/b/c.html`` -> ``https://host/a/b/``
    """
    path = parts.path
    last_slash = path.rfind("/")
    base_path = path[: last_slash + 1] if last_slash >= 0 else "/"
    return f"{parts.scheme}://{parts.netloc}{base_path}"


def base_tag(base_href: str) -> str:
    return f'<base href="{escape(base_href, quote=True)}">'


def _insert_after_head(html: str, snippet: str) -> str:
    """Insert ``snippet`` after the opening head tag, if there is one."""
    match = HEAD_OPEN_RE.search(html)
    if not match:
        return html
    return f"{html[:match.end()]}\n    {snippet}{html[match.end():]}"


def _inject_base(html: str, base_href: str) -> str:
    if BASE_TAG_RE.search(html):
        return html
    tag = base_tag(base_href)
    if HEAD_OPEN_RE.search(html):
        return _insert_after_head(html, tag)
    return f"<head>{tag}</head>\n{html}"


def _inject_viewport(html: str) -> str:
    if VIEWPORT_META_RE.search(html):
        return html
    return _insert_after_head(html, VIEWPORT_META)


def _inject_error_guard(html: str) -> str:
    if ERROR_GUARD_RE.search(html):
        return html
    match = HEAD_CLOSE_RE.search(html)
    if match:
        return f"{html[:match.start()]}{LEGACY_ERROR_GUARD}\n{html[match.start():]}"
    return f"{LEGACY_ERROR_GUARD}\n{html}"


def prepare_html(html: str, base_href: str) -> str:
    """
    Make a legacy document embeddable.

    Args:
        html: Raw document as fetched
        base_href: Directory URL of the source document

    Returns:
        Transformed document (``html`` itself when empty)
    """
    if not html:
        return html

    html = _inject_base(html, base_href)
    html = _inject_viewport(html)
    html = _inject_error_guard(html)
    return html
