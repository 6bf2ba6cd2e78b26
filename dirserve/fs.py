"""
Safe filesystem operations for dirserve
"""

import stat
import logging
from pathlib import Path
from typing import List, AsyncGenerator
import aiofiles
import aiofiles.os

from .models import FileInfo, ResolvedRequest
from .utils import get_mime_type, normalize_path, is_hidden_file

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024


class FileSystemError(Exception):
    """Generic filesystem error"""
    status_code = 500


class NotFoundError(FileSystemError):
    """Path does not exist or must not be revealed"""
    status_code = 404


class PathTraversalError(NotFoundError):
    """Raised when path traversal attack is detected"""
    pass


class ForbiddenError(FileSystemError):
    """Path exists but the server may not stat it"""
    status_code = 403


class DirectoryReadError(FileSystemError):
    """Directory exists but its entries cannot be enumerated"""
    status_code = 500


def clean_request_path(request_path: str) -> List[str]:
    """
    Split a request path into clean segments

    Empty and "." segments are dropped and ".." removes the previous
    segment. Backslashes count as separators.

    Raises:
        PathTraversalError: If ".." would climb above the root or a
            segment contains a NUL byte
    """
    parts: List[str] = []
    for part in normalize_path(request_path).split('/'):
        if not part or part == '.':
            continue
        if '\x00' in part:
            raise PathTraversalError(f"NUL byte in path: {request_path!r}")
        if part == '..':
            if not parts:
                raise PathTraversalError(f"Path traversal detected: {request_path}")
            parts.pop()
            continue
        parts.append(part)
    return parts


def safe_join(root_path: Path, rel_path: str) -> Path:
    """
    Safely join root path with a request path, preventing directory traversal

    Args:
        root_path: Root directory path
        rel_path: Request path, with or without a leading slash

    Returns:
        Resolved absolute path equal to or below root

    Raises:
        PathTraversalError: If path would escape root directory
    """
    parts = clean_request_path(rel_path)

    base_path = root_path.resolve()
    full_path = base_path.joinpath(*parts) if parts else base_path

    # Resolve symlinks without requiring the target to exist
    try:
        resolved_path = full_path.resolve(strict=False)
    except (OSError, RuntimeError) as e:
        raise NotFoundError(f"Failed to resolve path: {e}")

    # Segment-wise containment, "/base-evil" is not under "/base"
    try:
        resolved_path.relative_to(base_path)
    except ValueError:
        raise PathTraversalError(f"Path traversal detected: {rel_path}")

    return resolved_path


def resolve_request(root_path: Path, request_path: str) -> ResolvedRequest:
    """Map a request path to its location under root"""
    parts = clean_request_path(request_path)
    return ResolvedRequest(
        requested_path="/" + "/".join(parts),
        absolute_path=safe_join(root_path, request_path),
    )


def sort_entries(entries: List[FileInfo]) -> List[FileInfo]:
    """Directories first, then names in code point order"""
    return sorted(entries, key=lambda x: (not x.is_dir, x.name))


async def list_directory(dir_path: Path, request_path: str) -> List[FileInfo]:
    """
    List visible directory children

    Args:
        dir_path: Absolute directory path, already validated
        request_path: Cleaned request path of the directory

    Returns:
        Sorted list of FileInfo objects, dot entries excluded

    Raises:
        DirectoryReadError: If the directory cannot be enumerated
    """
    try:
        names = await aiofiles.os.listdir(dir_path)
    except OSError as e:
        raise DirectoryReadError(f"Failed to read directory {dir_path}: {e}")

    base = request_path.rstrip('/')
    entries = []
    for name in names:
        if is_hidden_file(name):
            continue

        entry_path = dir_path / name
        try:
            st = await aiofiles.os.stat(entry_path)
        except OSError as e:
            logger.warning(f"Failed to stat {entry_path}: {e}")
            continue

        is_dir = stat.S_ISDIR(st.st_mode)
        entries.append(FileInfo(
            name=name,
            path=f"{base}/{name}",
            size=st.st_size,
            is_dir=is_dir,
            modified=st.st_mtime,
            mime_type="" if is_dir else get_mime_type(entry_path)
        ))

    return sort_entries(entries)


async def open_file_stream(file_path: Path, size: int) -> AsyncGenerator[bytes, None]:
    """
    Stream at most ``size`` bytes of a file

    The handle lives inside the generator, so it is closed when the
    stream finishes, fails, or is closed after a client disconnect.
    """
    remaining = size
    try:
        f = await aiofiles.open(file_path, 'rb')
    except OSError as e:
        logger.error(f"Failed to open {file_path}: {e}")
        raise

    try:
        while remaining > 0:
            chunk = await f.read(min(CHUNK_SIZE, remaining))
            if not chunk:
                break
            remaining -= len(chunk)
            yield chunk
    finally:
        await f.close()
