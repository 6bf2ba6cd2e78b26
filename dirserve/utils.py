"""
Utility functions for dirserve
"""

import mimetypes
from datetime import datetime
from pathlib import Path
from typing import Optional

from .models import MIME_TYPES, DEFAULT_MIME_TYPE, SECURITY_HEADERS, NO_CACHE


def get_mime_type(file_path: Path) -> str:
    """Get MIME type for file"""
    suffix = file_path.suffix.lower()

    # Check our custom MIME types first
    if suffix in MIME_TYPES:
        return MIME_TYPES[suffix]

    # Fall back to system mimetypes
    mime_type, _ = mimetypes.guess_type(str(file_path))
    return mime_type or DEFAULT_MIME_TYPE


def format_timestamp(timestamp: float, format_str: str = "%Y-%m-%d %H:%M:%S") -> str:
    """Format timestamp to readable string"""
    try:
        dt = datetime.fromtimestamp(timestamp)
        return dt.strftime(format_str)
    except (ValueError, OSError, OverflowError):
        return "Unknown"


def normalize_path(path: str) -> str:
    """Normalize path separators for cross-platform compatibility"""
    return path.replace('\\', '/')


def printable_name(name: str) -> str:
    """
    Make a filesystem name safe to encode as UTF-8

    Names that are not valid UTF-8 come back from os.listdir with lone
    surrogates; those bytes are shown as U+FFFD.
    """
    return name.encode('utf-8', 'surrogateescape').decode('utf-8', 'replace')


def is_hidden_file(filename: str) -> bool:
    """Check if file is hidden (starts with dot)"""
    return filename.startswith('.')


def format_duration(seconds: float) -> str:
    """Format duration in seconds to human readable string"""
    if seconds < 1:
        return f"{seconds*1000:.1f}ms"
    elif seconds < 60:
        return f"{seconds:.1f}s"
    elif seconds < 3600:
        minutes = int(seconds // 60)
        secs = int(seconds % 60)
        return f"{minutes}m{secs}s"
    else:
        hours = int(seconds // 3600)
        minutes = int((seconds % 3600) // 60)
        return f"{hours}h{minutes}m"


def get_client_ip(request) -> str:
    """Extract client IP from request, considering proxies"""

    # Check X-Forwarded-For header (proxy)
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        # Take the first IP (original client)
        return forwarded_for.split(",")[0].strip()

    # Check X-Real-IP header (nginx)
    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()

    # Fall back to direct connection IP
    if request.client:
        return request.client.host

    return "unknown"


def create_response_headers(
    content_type: str,
    content_length: Optional[int] = None,
    cache_control: str = NO_CACHE
) -> dict:
    """Create headers for browse and file responses"""
    headers = {
        "Content-Type": content_type,
        "Cache-Control": cache_control,
    }
    headers.update(SECURITY_HEADERS)

    if content_length is not None:
        headers["Content-Length"] = str(content_length)

    return headers
