import html
from typing import Optional


def sanitize_string(value: Optional[str]) -> Optional[str]:
    """
    Sanitize a string by escaping HTML special characters to prevent XSS.
    Returns None if input is None.
    """
    if value is None:
        return None
    if not isinstance(value, str):
        return value
    return html.escape(str(value), quote=True)


def safe_filename(filename: Optional[str], default: str = "attachment") -> str:
    """
    Reduce an uploaded filename to a safe object-key segment.

    Path separators and traversal sequences are dropped, anything outside
    [A-Za-z0-9._-] becomes an underscore.
    """
    if not filename:
        return default
    name = filename.replace("\\", "/").split("/")[-1].replace("..", "")
    cleaned = "".join(ch if ch.isalnum() or ch in "._-" else "_" for ch in name).strip("._")
    return cleaned[:120] or default
