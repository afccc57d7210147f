"""
Security helpers shared by the providers, the transport and the image processor.
"""

import os
import re
from typing import Optional
from urllib.parse import urlparse

MAX_ID_LENGTH = 200
_UNSAFE_ID_CHARS = re.compile(r"[^a-zA-Z0-9_\-]")


class SecurityError(RuntimeError):
    """Raised when upstream data would leave the allowed URL scheme or directory."""


def sanitize_id(value: Optional[object]) -> str:
    """Strip everything but alphanumerics, '_' and '-' so the id is safe in URLs and file names"""
    if value is None:
        return "_"
    cleaned = _UNSAFE_ID_CHARS.sub("", str(value))
    if not cleaned:
        return "_"
    return cleaned[:MAX_ID_LENGTH]


def require_https(url: Optional[str]) -> str:
    parsed = urlparse(url or "")
    if parsed.scheme.lower() != "https" or not parsed.netloc:
        raise SecurityError(f"Security: only HTTPS URLs are permitted. Rejected: {url}")
    return url


def ensure_path_within(file_path: str, directory: str) -> str:
    """Return the resolved path, or raise if it escapes the directory"""
    resolved_file = os.path.realpath(file_path)
    resolved_dir = os.path.realpath(directory)
    file_key = os.path.normcase(resolved_file)
    dir_key = os.path.normcase(resolved_dir)
    try:
        inside = os.path.commonpath([file_key, dir_key]) == dir_key
    except ValueError:  # different drives on Windows
        inside = False
    if not inside or file_key == dir_key:
        raise SecurityError(
            f"Security: path traversal attempt. '{file_path}' is outside '{directory}'."
        )
    return resolved_file
