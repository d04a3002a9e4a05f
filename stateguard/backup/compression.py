"""
Archive construction for backup snapshots.

Archives are gzip compressed POSIX (pax) tar streams so operators can inspect
them with standard tools. Entries keep the absolute path they had on the node.
"""

import os
import re
import gzip
import stat
import socket
import logging
import tarfile
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Iterator, Optional

from .errors import ArchiveError
from .exclusion import ExclusionMatcher


logger = logging.getLogger(__name__)

ARCHIVE_EXTENSION = '.tar.gz'
TIMESTAMP_FORMAT = '%Y-%m-%d_%H-%M-%S'
_TIMESTAMP_RE = re.compile(r'(\d{4}-\d{2}-\d{2}_\d{2}-\d{2}-\d{2})\.tar\.gz$')


@dataclass
class WalkEntry:
    """A visited filesystem entry, or the error raised while visiting it."""
    path: str
    stat: Optional[os.stat_result] = None
    error: Optional[OSError] = None


@dataclass
class ArchiveStats:
    """Result of a successful archive build."""
    path: str
    size_bytes: int
    entry_count: int
    skipped: int


def walk_entries(
    root: str,
    matcher: Optional[ExclusionMatcher] = None,
    sort_entries: bool = True
) -> Iterator[WalkEntry]:
    """
    Walk a directory tree depth-first, root included.

    Every entry is checked against the matcher on its own. An excluded
    directory is not yielded but is still descended, so children that match
    no pattern are kept. Entries that cannot be read are yielded with
    ``error`` set so the caller decides whether to skip or abort.

    Args:
        root: Directory or file to walk
        matcher: Exclusion matcher applied to every entry
        sort_entries: Emit directory children sorted by name

    Yields:
        WalkEntry for each visited, non-excluded entry
    """
    try:
        root_stat = os.lstat(root)
    except OSError as e:
        yield WalkEntry(root, error=e)
        return

    if not (matcher and matcher.is_excluded(root)):
        yield WalkEntry(root, root_stat)

    if stat.S_ISDIR(root_stat.st_mode):
        yield from _walk_directory(root, matcher, sort_entries)


def _walk_directory(directory: str, matcher, sort_entries: bool) -> Iterator[WalkEntry]:
    try:
        with os.scandir(directory) as it:
            children = list(it)
    except OSError as e:
        yield WalkEntry(directory, error=e)
        return

    if sort_entries:
        children.sort(key=lambda child: child.name)

    for child in children:
        excluded = matcher is not None and matcher.is_excluded(child.path, child.name)

        try:
            child_stat = child.stat(follow_symlinks=False)
        except OSError as e:
            if not excluded:
                yield WalkEntry(child.path, error=e)
            continue

        if not excluded:
            yield WalkEntry(child.path, child_stat)

        if stat.S_ISDIR(child_stat.st_mode):
            yield from _walk_directory(child.path, matcher, sort_entries)


def _open_source(path: str):
    """Open a regular file for archiving."""
    return open(path, 'rb')


def _make_tarinfo(path: str, st: os.stat_result, is_dir: bool) -> tarfile.TarInfo:
    info = tarfile.TarInfo(path)
    info.mode = stat.S_IMODE(st.st_mode)
    info.mtime = int(st.st_mtime)
    info.uid = st.st_uid
    info.gid = st.st_gid
    if is_dir:
        info.type = tarfile.DIRTYPE
        info.size = 0
    else:
        info.type = tarfile.REGTYPE
        info.size = st.st_size
    return info


def _temp_path_for(destination: str) -> str:
    directory, filename = os.path.split(destination)
    return os.path.join(directory, f".{filename}.partial")


def create_archive(
    destination: str,
    roots: Iterable[str],
    exclusions: Iterable[str] = None,
    sort_entries: bool = True
) -> ArchiveStats:
    """
    Build a compressed archive of the given roots.

    The archive is written to a hidden temporary file next to ``destination``
    and renamed into place only once every writer has been flushed and closed.

    Args:
        destination: Final archive path
        roots: Root paths to archive, in order
        exclusions: Exclusion patterns
        sort_entries: Emit directory children sorted by name

    Returns:
        ArchiveStats for the finished archive

    Raises:
        ArchiveError: If the destination exists, cannot be created, or a write fails
    """
    roots = list(roots)
    if not roots:
        raise ArchiveError("No source paths provided")

    if os.path.exists(destination):
        raise ArchiveError(f"Archive already exists: {destination}")

    matcher = ExclusionMatcher(exclusions)
    temp_path = _temp_path_for(destination)
    entry_count = 0
    skipped = 0

    try:
        raw = open(temp_path, 'xb')
    except OSError as e:
        raise ArchiveError(f"Cannot create archive {destination}: {e}") from e

    try:
        with raw:
            with gzip.GzipFile(filename='', fileobj=raw, mode='wb') as gz:
                with tarfile.open(fileobj=gz, mode='w|', format=tarfile.PAX_FORMAT) as tar:
                    for root in roots:
                        for entry in walk_entries(root, matcher, sort_entries):
                            if entry.error is not None:
                                logger.warning(f"Skipping unreadable entry {entry.path}: {entry.error}")
                                skipped += 1
                                continue
                            if entry.path == temp_path:
                                continue
                            if _add_entry(tar, entry):
                                entry_count += 1
                            else:
                                skipped += 1
            raw.flush()
            os.fsync(raw.fileno())

        if os.path.exists(destination):
            raise ArchiveError(f"Archive already exists: {destination}")
        os.rename(temp_path, destination)

    except ArchiveError:
        _remove_quietly(temp_path)
        raise
    except (OSError, tarfile.TarError) as e:
        _remove_quietly(temp_path)
        raise ArchiveError(f"Failed to create archive: {e}") from e

    size = get_archive_size(destination)
    logger.info(f"Archive created: {destination} ({entry_count} entries, {size} bytes)")
    return ArchiveStats(path=destination, size_bytes=size, entry_count=entry_count, skipped=skipped)


def _add_entry(tar: tarfile.TarFile, entry: WalkEntry) -> bool:
    """
    Write one entry into the archive.

    Returns:
        True if written, False if the entry was skipped
    """
    mode = entry.stat.st_mode

    if stat.S_ISDIR(mode):
        tar.addfile(_make_tarinfo(entry.path, entry.stat, is_dir=True))
        return True

    if not stat.S_ISREG(mode):
        logger.debug(f"Skipping non-regular entry: {entry.path}")
        return False

    try:
        source = _open_source(entry.path)
    except OSError as e:
        logger.warning(f"Skipping unreadable file {entry.path}: {e}")
        return False

    with source:
        # Size from the open handle so the header matches what will be read
        info = _make_tarinfo(entry.path, os.fstat(source.fileno()), is_dir=False)
        tar.addfile(info, source)
    return True


def _remove_quietly(path: str):
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning(f"Failed to remove partial archive {path}: {e}")


def generate_archive_filename(product: str, hostname: Optional[str] = None, now: Optional[datetime] = None) -> str:
    """
    Generate a standardized archive filename.

    Format: {product}-{hostname}-{YYYY-MM-DD_HH-MM-SS}.tar.gz

    Args:
        product: Product/tool name prefix
        hostname: Node hostname (defaults to the local hostname)
        now: Timestamp to embed (defaults to the current local time)

    Returns:
        Filename (without path)
    """
    if hostname is None:
        hostname = socket.gethostname()
    if now is None:
        now = datetime.now()

    safe_hostname = "".join(
        c if c.isalnum() or c in ('-', '.') else '_'
        for c in hostname
    ) or 'localhost'

    return f"{product}-{safe_hostname}-{now.strftime(TIMESTAMP_FORMAT)}{ARCHIVE_EXTENSION}"


def is_archive_name(filename: str) -> bool:
    """Check whether a filename looks like a finished archive."""
    return filename.endswith(ARCHIVE_EXTENSION) and not filename.startswith('.')


def parse_archive_timestamp(filename: str) -> Optional[datetime]:
    """
    Extract the creation time embedded in an archive name.

    Returns:
        datetime, or None if the name carries no timestamp
    """
    match = _TIMESTAMP_RE.search(filename)
    if not match:
        return None
    try:
        return datetime.strptime(match.group(1), TIMESTAMP_FORMAT)
    except ValueError:
        return None


def get_archive_size(archive_path: str) -> int:
    """
    Get the size of an archive file in bytes.

    Raises:
        ArchiveError: If file doesn't exist or cannot be accessed
    """
    try:
        return os.path.getsize(archive_path)
    except FileNotFoundError as e:
        raise ArchiveError(f"Archive not found: {archive_path}") from e
    except OSError as e:
        raise ArchiveError(f"Failed to get archive size: {e}") from e
