"""
File system utilities for StackKit.

This module provides the file operations the supply pipeline relies on:
- Archive extraction (zip, tar.gz) with directory-traversal protection
- Safe file operations (atomic writes, guarded deletion, directory clearing)
- Tree copies that preserve symlinks, and moves of pre-extracted artifacts

All helpers raise FilesystemError (or a subclass) so callers can translate
failures into the installation error taxonomy.
"""

import os
import shutil
import stat
import sys
import tarfile
import tempfile
import zipfile
from pathlib import Path
from typing import Optional, Union


# ============================================================================
# Error Handling
# ============================================================================


class FilesystemError(Exception):
    """Base exception for filesystem operations."""

    pass


class ArchiveExtractionError(FilesystemError):
    """Failed to extract an archive."""

    pass


class UnsupportedArchiveFormat(ArchiveExtractionError):
    """Archive format is not supported."""

    pass


class InsecureArchiveError(ArchiveExtractionError):
    """Archive contains insecure paths (directory traversal attempt)."""

    pass


ARCHIVE_SUFFIXES = (".zip", ".tar.gz", ".tgz")


# ============================================================================
# Path Utilities
# ============================================================================


def is_relative_to(path: Path, parent: Path) -> bool:
    """
    Check if path is relative to (under) parent directory.

    Args:
        path: Path to check
        parent: Parent directory

    Returns:
        True if path is under parent directory

    Example:
        >>> is_relative_to(Path("/cache/v1/jq-1.6.0"), Path("/cache"))
        True
    """
    try:
        path.relative_to(parent)
        return True
    except ValueError:
        return False


def is_archive(name: str) -> bool:
    """Return True if name carries a suffix extract_archive understands."""
    return name.lower().endswith(ARCHIVE_SUFFIXES)


# ============================================================================
# Archive Extraction
# ============================================================================


def _validate_archive_path(path: str, destination: Path) -> None:
    """
    Validate that an archive member path is safe to extract.

    Args:
        path: Member path from archive
        destination: Extraction destination

    Raises:
        InsecureArchiveError: If path attempts directory traversal
    """
    member_path = (destination / path).resolve()

    if not is_relative_to(member_path, destination.resolve()):
        raise InsecureArchiveError(
            f"Archive member '{path}' attempts directory traversal. "
            "This is a security risk and extraction has been blocked."
        )


def extract_archive(
    archive_path: Union[str, Path],
    destination: Union[str, Path],
    archive_name: Optional[str] = None,
) -> None:
    """
    Extract an archive to a destination directory.

    The format is detected from archive_name when given (the fetched file is
    usually stored without its original suffix), otherwise from the file name.

    Supported formats:
    - .zip
    - .tar.gz, .tgz

    Args:
        archive_path: Path to the archive file
        destination: Directory to extract to
        archive_name: Name whose suffix selects the format

    Raises:
        UnsupportedArchiveFormat: If archive format is not recognized
        ArchiveExtractionError: If extraction fails
        InsecureArchiveError: If archive contains malicious paths

    Example:
        >>> extract_archive('/tmp/deps/jq-1.6.0', '/cache/v1/jq-1.6.0', 'jq-1.6.tar.gz')
    """
    archive_path = Path(archive_path)
    destination = Path(destination)

    if not archive_path.exists():
        raise ArchiveExtractionError(f"Archive not found: {archive_path}")

    destination.mkdir(parents=True, exist_ok=True)

    name = (archive_name or archive_path.name).lower()

    try:
        if name.endswith(".zip"):
            _extract_zip(archive_path, destination)
        elif name.endswith((".tar.gz", ".tgz")):
            _extract_tar(archive_path, destination, "r:gz")
        else:
            raise UnsupportedArchiveFormat(
                f"Unsupported archive format: {name}. Supported: .zip, .tar.gz"
            )
    except (InsecureArchiveError, UnsupportedArchiveFormat):
        raise
    except Exception as e:
        raise ArchiveExtractionError(f"Failed to extract {archive_path}: {e}") from e


def _extract_zip(archive_path: Path, destination: Path) -> None:
    """Extract a ZIP archive, recreating symlink members as symlinks."""
    with zipfile.ZipFile(archive_path, "r") as zf:
        members = zf.infolist()

        for member in members:
            _validate_archive_path(member.filename, destination)

        for member in members:
            mode = member.external_attr >> 16
            if stat.S_ISLNK(mode):
                _extract_zip_symlink(zf, member, destination)
                continue

            extracted = Path(zf.extract(member, destination))
            # zipfile drops unix permission bits; restore them so binaries stay executable
            if mode & 0o777 and not member.is_dir():
                os.chmod(extracted, mode & 0o777)


def _extract_zip_symlink(zf: zipfile.ZipFile, member: zipfile.ZipInfo, destination: Path):
    """Create the symlink stored in member; its target must stay inside destination."""
    target = zf.read(member).decode("utf-8")
    _validate_archive_path(
        os.path.join(os.path.dirname(member.filename), target), destination
    )

    link = destination / member.filename
    link.parent.mkdir(parents=True, exist_ok=True)
    if link.is_symlink() or link.exists():
        link.unlink()
    os.symlink(target, link)


def _extract_tar(archive_path: Path, destination: Path, mode: str) -> None:
    """Extract a tar archive with specified compression."""
    with tarfile.open(archive_path, mode) as tar:
        for member in tar.getmembers():
            _validate_archive_path(member.name, destination)

        if sys.version_info >= (3, 12):
            tar.extractall(destination, filter="tar")
        else:
            tar.extractall(destination)


def normalize_root_directory(extract_dir: Path) -> Path:
    """
    Return the real root of an extracted tree.

    Source tarballs usually wrap everything in one top-level folder; if so,
    that folder is the root, otherwise extract_dir itself is.
    """
    items = list(extract_dir.iterdir())

    if len(items) == 1 and items[0].is_dir():
        return items[0]

    return extract_dir


# ============================================================================
# Safe File Operations
# ============================================================================


def atomic_write(
    file_path: Union[str, Path],
    content: Union[str, bytes],
    encoding: str = "utf-8",
    mode: Optional[int] = None,
) -> None:
    """
    Write file atomically using temp file + rename.

    Args:
        file_path: Path to write to
        content: Content to write (string or bytes)
        encoding: Text encoding (used only for string content)
        mode: Optional permission bits applied before the rename

    Example:
        >>> atomic_write('deps/0/config.yml', 'config: {}')
    """
    file_path = Path(file_path)
    file_path.parent.mkdir(parents=True, exist_ok=True)

    temp_fd, temp_path_str = tempfile.mkstemp(
        dir=file_path.parent, prefix=f".{file_path.name}.", suffix=".tmp"
    )
    temp_path = Path(temp_path_str)

    try:
        if isinstance(content, str):
            with open(temp_fd, "w", encoding=encoding) as f:
                f.write(content)
        else:
            with open(temp_fd, "wb") as f:
                f.write(content)

        if mode is not None:
            os.chmod(temp_path, mode)

        temp_path.replace(file_path)

    except Exception:
        try:
            temp_path.unlink(missing_ok=True)
        except OSError:
            pass
        raise


def safe_rmtree(
    path: Union[str, Path], require_prefix: Optional[Union[str, Path]] = None
) -> None:
    """
    Safely remove a directory tree with safeguards.

    Args:
        path: Directory to remove
        require_prefix: If specified, path must be under this directory

    Raises:
        ValueError: If path is not under require_prefix
        FilesystemError: If deletion fails

    Example:
        >>> safe_rmtree('/cache/dependencies/v1/jq-1.5.0', require_prefix='/cache')
    """
    path = Path(path).absolute()

    if require_prefix is not None:
        require_prefix = Path(require_prefix).absolute()
        if not is_relative_to(path, require_prefix):
            raise ValueError(
                f"Refusing to delete '{path}': not under required prefix '{require_prefix}'"
            )

    if not path.exists() and not path.is_symlink():
        return

    try:
        if path.is_dir() and not path.is_symlink():
            shutil.rmtree(path)
        else:
            path.unlink()
    except Exception as e:
        raise FilesystemError(f"Failed to remove '{path}': {e}") from e


def remove_all_contents(directory: Union[str, Path]) -> None:
    """
    Delete everything inside directory but keep the directory itself.

    A missing directory is treated as already empty.

    Raises:
        FilesystemError: If an entry cannot be removed
    """
    directory = Path(directory)
    if not directory.exists():
        return

    for item in directory.iterdir():
        safe_rmtree(item, require_prefix=directory)


def copy_tree(source: Union[str, Path], destination: Union[str, Path]) -> None:
    """
    Copy the contents of source into destination, merging with what is there.

    Symlinks are copied as symlinks so relocatable runtimes (JDKs, Python
    prefixes) keep their internal links.

    Raises:
        FilesystemError: If source is missing or the copy fails
    """
    source = Path(source)
    destination = Path(destination)

    if not source.is_dir():
        raise FilesystemError(f"Source is not a directory: {source}")

    try:
        shutil.copytree(source, destination, symlinks=True, dirs_exist_ok=True)
    except (shutil.Error, OSError) as e:
        raise FilesystemError(f"Failed to copy '{source}' to '{destination}': {e}") from e


def move_into_place(source: Path, destination: Path, file_name: str) -> None:
    """
    Move a pre-extracted artifact into destination.

    A directory becomes destination itself; a single file is placed inside
    destination under file_name.

    Raises:
        FilesystemError: If the move fails
    """
    try:
        if source.is_dir():
            destination.parent.mkdir(parents=True, exist_ok=True)
            shutil.move(str(source), str(destination))
        else:
            destination.mkdir(parents=True, exist_ok=True)
            target = destination / file_name
            shutil.move(str(source), str(target))
    except (shutil.Error, OSError) as e:
        raise FilesystemError(f"Failed to move '{source}' to '{destination}': {e}") from e


__all__ = [
    "FilesystemError",
    "ArchiveExtractionError",
    "UnsupportedArchiveFormat",
    "InsecureArchiveError",
    "ARCHIVE_SUFFIXES",
    "is_relative_to",
    "is_archive",
    "extract_archive",
    "normalize_root_directory",
    "atomic_write",
    "safe_rmtree",
    "remove_all_contents",
    "copy_tree",
    "move_into_place",
]
