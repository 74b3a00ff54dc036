"""Snapshot files on disk: path checks, encoding-aware read, atomic write.

``snapshot_export`` and ``snapshot_import`` only accept absolute paths.
Imports may come from older exports that were not written as UTF-8, so
the bytes are decoded with charset-normalizer rather than assumed.
Exports are written to a temp file in the target directory, flushed to
disk, then moved into place, so a crash never leaves a truncated export
that a later import would reject.
"""

import os
import tempfile
from pathlib import Path

from charset_normalizer import from_bytes

from .core.async_utils import run_sync

# Larger files are not snapshots of a writing studio; refuse to load them.
MAX_SNAPSHOT_FILE_BYTES = 256 * 1024 * 1024


def _absolute(path_str: str) -> Path:
    path = Path(path_str)
    if not path.is_absolute():
        raise ValueError(f"Path must be absolute: {path_str}")
    return path.resolve()


def validate_file_path(
    path_str: str, max_bytes: int = MAX_SNAPSHOT_FILE_BYTES
) -> Path:
    """Resolve the path of a snapshot file to import.

    Raises:
        ValueError: If the path is relative, missing, not a regular file,
            or larger than *max_bytes*.
    """
    resolved = _absolute(path_str)
    if not resolved.exists():
        raise ValueError(f"File not found: {path_str}")
    if not resolved.is_file():
        raise ValueError(f"Path is not a file: {path_str}")
    size = resolved.stat().st_size
    if size > max_bytes:
        raise ValueError(
            f"File is too large to be a snapshot: {size} bytes (limit {max_bytes})"
        )
    return resolved


def validate_output_path(path_str: str) -> Path:
    """Resolve the path an export will be written to.

    The file may exist (it is replaced); its directory must.

    Raises:
        ValueError: If the path is relative, names a directory, or its
            parent directory does not exist.
    """
    resolved = _absolute(path_str)
    if resolved.is_dir():
        raise ValueError(f"Output path is a directory: {path_str}")
    if not resolved.parent.is_dir():
        raise ValueError(
            f"Output parent directory not found: {resolved.parent}"
        )
    return resolved


def read_file_with_encoding(path: Path) -> tuple[str, str]:
    """Decode a file whose encoding is not known in advance.

    Returns:
        Tuple of (content, encoding).  Empty files and files
        charset-normalizer cannot classify are treated as UTF-8.
    """
    raw = path.read_bytes()
    if not raw:
        return ("", "utf-8")

    match = from_bytes(raw).best()
    if match is None:
        return (raw.decode("utf-8", errors="replace").removeprefix("\ufeff"), "utf-8")

    # ascii is a strict subset of utf-8
    encoding = "utf-8" if match.encoding == "ascii" else match.encoding
    # a leading BOM makes the JSON unparseable
    return (str(match).removeprefix("\ufeff"), encoding)


def write_file_atomic(
    path: Path, content: str, encoding: str = "utf-8"
) -> int:
    """Replace *path* with *content* in one step.

    Returns:
        Number of bytes written.
    """
    encoded = content.encode(encoding)
    fd, tmp_path = tempfile.mkstemp(
        dir=str(path.parent), prefix=f".{path.name}.", suffix=".tmp"
    )
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(encoded)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp_path, path)
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise
    return len(encoded)


async def read_file_async(path_str: str) -> tuple[str, str, Path]:
    """Validate and read a snapshot file off the event loop.

    Returns:
        Tuple of (content, encoding, resolved_path).
    """
    resolved = await run_sync(validate_file_path, path_str)
    content, encoding = await run_sync(read_file_with_encoding, resolved)
    return (content, encoding, resolved)


async def write_file_async(
    path_str: str, content: str, encoding: str = "utf-8"
) -> tuple[Path, int]:
    """Validate the output path and write atomically off the event loop.

    Returns:
        Tuple of (resolved_path, bytes_written).
    """
    resolved = await run_sync(validate_output_path, path_str)
    count = await run_sync(write_file_atomic, resolved, content, encoding)
    return (resolved, count)
