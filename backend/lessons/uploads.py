"""
HTML upload checks, run before a legacy document is sent to the upload
service.
"""

from urllib.parse import urlsplit, unquote

MAX_HTML_UPLOAD_BYTES = 10 * 1024 * 1024
HTML_EXTENSIONS = (".html", ".htm")
DEFAULT_UPLOAD_NAME = "document.html"


class UploadValidationError(ValueError):
    """The file cannot be uploaded as a legacy HTML document."""


def format_bytes(size: int) -> str:
    """``1536`` -> ``1.5 KB``"""
    if size <= 0:
        return "0 B"
    units = ["B", "KB", "MB"]
    exponent = 0
    while size >= 1024 ** (exponent + 1) and exponent < len(units) - 1:
        exponent += 1
    value = round(size / (1024 ** exponent), 1)
    return f"{value:g} {units[exponent]}"


def validate_html_upload(filename: str, size: int) -> None:
    """
    Raises:
        UploadValidationError: if the file is too large or not .html/.htm
    """
    if size > MAX_HTML_UPLOAD_BYTES:
        raise UploadValidationError(
            f"File exceeds {format_bytes(MAX_HTML_UPLOAD_BYTES)} ({format_bytes(size)})"
        )
    if not filename.lower().endswith(HTML_EXTENSIONS):
        raise UploadValidationError("Only .html or .htm files are allowed")


def file_name_from_url(url: str) -> str:
    """Last path segment of an uploaded document's URL."""
    try:
        path = urlsplit(url).path
    except ValueError:
        return DEFAULT_UPLOAD_NAME
    name = unquote(path.rsplit("/", 1)[-1])
    return name or DEFAULT_UPLOAD_NAME
