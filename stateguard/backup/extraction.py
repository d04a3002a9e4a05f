"""
Archive extraction for restore operations.

Entries are restored in stream order under a destination root. Existing files
are overwritten; nothing is rolled back if extraction fails midway, so a
failed restore can simply be re-run.
"""

import os
import gzip
import zlib
import shutil
import logging
import tarfile
from dataclasses import dataclass
from typing import BinaryIO, List, Tuple

from .errors import ArchiveError


logger = logging.getLogger(__name__)

DIRECTORY_MODE = 0o755


@dataclass
class ExtractStats:
    """Counts of restored entries."""
    files: int = 0
    directories: int = 0
    skipped: int = 0


def _target_path(destination_root: str, member_name: str) -> str:
    """
    Map a captured entry path onto the destination root.

    Raises:
        ArchiveError: If the entry would land outside the destination root
    """
    root = os.path.abspath(destination_root)
    target = os.path.abspath(os.path.join(root, member_name.lstrip('/')))
    if target != root and not target.startswith(root.rstrip(os.sep) + os.sep):
        raise ArchiveError(f"Archive entry escapes destination: {member_name}")
    return target


def _open_for_overwrite(target: str):
    """Open-or-truncate a target file, making an existing read-only copy writable first."""
    if os.path.isfile(target) and not os.access(target, os.W_OK):
        os.chmod(target, os.stat(target).st_mode | 0o200)
    return open(target, 'wb')


def extract_stream(fileobj: BinaryIO, destination_root: str) -> ExtractStats:
    """
    Restore every entry of a gzip compressed tar stream.

    Directory permissions from the archive are applied after the whole stream
    has been consumed so read-only directories do not block their contents.

    Args:
        fileobj: Readable binary stream positioned at the archive start
        destination_root: Directory that captured paths are appended to

    Returns:
        ExtractStats with restored entry counts

    Raises:
        ArchiveError: On corrupt headers, truncated data or write failures
    """
    stats = ExtractStats()
    directory_modes: List[Tuple[str, int]] = []

    try:
        with gzip.GzipFile(fileobj=fileobj, mode='rb') as gz:
            with tarfile.open(fileobj=gz, mode='r|') as tar:
                for member in tar:
                    target = _target_path(destination_root, member.name)

                    if member.isdir():
                        os.makedirs(target, mode=DIRECTORY_MODE, exist_ok=True)
                        if not os.access(target, os.W_OK | os.X_OK):
                            os.chmod(target, os.stat(target).st_mode | 0o700)
                        directory_modes.append((target, member.mode))
                        stats.directories += 1

                    elif member.isreg():
                        os.makedirs(os.path.dirname(target), mode=DIRECTORY_MODE, exist_ok=True)
                        source = tar.extractfile(member)
                        with _open_for_overwrite(target) as out:
                            shutil.copyfileobj(source, out)
                        os.chmod(target, member.mode & 0o7777)
                        stats.files += 1

                    else:
                        logger.debug(f"Skipping unsupported entry type: {member.name}")
                        stats.skipped += 1

        # Deepest directories first so parents stay writable until the end
        for path, mode in sorted(directory_modes, key=lambda item: item[0], reverse=True):
            os.chmod(path, mode & 0o7777)

    except ArchiveError:
        raise
    except (tarfile.TarError, EOFError, zlib.error, OSError) as e:
        raise ArchiveError(f"Failed to extract archive: {e}") from e

    logger.info(
        f"Extracted {stats.files} files and {stats.directories} directories "
        f"into {destination_root}"
    )
    return stats


def extract_archive(source_path: str, destination_root: str) -> ExtractStats:
    """
    Restore an archive file under a destination root.

    Args:
        source_path: Path to the .tar.gz archive
        destination_root: Directory that captured paths are appended to

    Returns:
        ExtractStats with restored entry counts

    Raises:
        ArchiveError: If the archive cannot be opened or extracted
    """
    try:
        source = open(source_path, 'rb')
    except OSError as e:
        raise ArchiveError(f"Cannot open archive {source_path}: {e}") from e

    with source:
        return extract_stream(source, destination_root)
