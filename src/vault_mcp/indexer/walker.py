"""File walker for discovering files in the vault."""

import fnmatch
import logging
import os
import stat
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from pathlib import Path, PurePosixPath

from vault_mcp.errors import BadRequestError, IoFailureError, NotFoundError

logger = logging.getLogger(__name__)


@dataclass
class FileInfo:
    """Information about a discovered file."""

    path: Path  # Absolute path
    relative_path: str  # Relative to vault root, forward slashes
    mtime_ns: int
    size: int
    modified_at: float
    created_at: float


def normalize_vault_path(path: str | None) -> str:
    """
    Normalize a caller-supplied vault path to the canonical relative form.

    Backslashes become forward slashes, "./" prefixes and surrounding
    slashes are stripped. Absolute paths and ".." segments are rejected.
    """
    if path is None:
        return ""
    raw = path.strip().replace("\\", "/")
    if raw.startswith("/") or (len(raw) >= 2 and raw[1] == ":" and raw[0].isalpha()):
        raise BadRequestError(
            f"Invalid vault path '{path}': paths must be relative to the vault root, "
            "not absolute"
        )
    parts = [p for p in raw.split("/") if p not in ("", ".")]
    if ".." in parts:
        raise BadRequestError(f"Invalid vault path '{path}': '..' is not allowed")
    return "/".join(parts)


def is_ignored(relative_path: str, ignore_patterns: Iterable[str]) -> bool:
    """Check whether a relative path is hidden or matches an ignore pattern."""
    parts = PurePosixPath(relative_path).parts
    if any(part.startswith(".") for part in parts):
        return True
    # Each segment and each ancestor folder path is matched
    candidates = set(parts)
    candidates.update("/".join(parts[: i + 1]) for i in range(len(parts)))
    return any(
        fnmatch.fnmatch(candidate, pattern)
        for pattern in ignore_patterns
        for candidate in candidates
    )


def _created_at(st: os.stat_result) -> float:
    # st_birthtime exists on macOS/BSD and recent Windows builds only
    return getattr(st, "st_birthtime", st.st_ctime)


def walk_vault(
    vault_root: Path,
    subfolder: str | None = None,
    ignore_patterns: Iterable[str] = (),
) -> Iterator[FileInfo]:
    """
    Walk the vault and yield FileInfo for each regular file.

    The root (and subfolder, when given) is validated before the iterator is
    returned, so a missing vault fails here rather than on first iteration.

    Raises:
        IoFailureError: The vault root does not exist or is not a directory.
        NotFoundError: The subfolder does not exist under the vault root.
    """
    if not vault_root.is_dir():
        raise IoFailureError(f"Vault root is not an accessible directory: {vault_root}")

    start = normalize_vault_path(subfolder)
    patterns = tuple(ignore_patterns)
    if start:
        start_dir = vault_root / start
        if not start_dir.is_dir() or is_ignored(start, patterns):
            raise NotFoundError(f"Folder not found: {start}")
    else:
        start_dir = vault_root

    return _walk(vault_root, start_dir, patterns)


def _walk(vault_root: Path, start_dir: Path, patterns: tuple[str, ...]) -> Iterator[FileInfo]:
    def on_error(err: OSError) -> None:
        logger.warning("Skipping unreadable entry %s: %s", err.filename, err.strerror)

    for dirpath, dirnames, filenames in os.walk(start_dir, onerror=on_error):
        current = Path(dirpath)
        rel_dir = current.relative_to(vault_root).as_posix()
        rel_dir = "" if rel_dir == "." else rel_dir

        # Prune in place so os.walk never descends into ignored folders
        dirnames[:] = sorted(
            d for d in dirnames
            if not is_ignored(f"{rel_dir}/{d}" if rel_dir else d, patterns)
        )

        for name in sorted(filenames):
            relative_path = f"{rel_dir}/{name}" if rel_dir else name
            if is_ignored(relative_path, patterns):
                continue

            file_path = current / name
            try:
                st = file_path.lstat()
            except OSError as e:
                logger.warning("Cannot stat %s: %s", relative_path, e)
                continue

            if not stat.S_ISREG(st.st_mode):
                continue

            yield FileInfo(
                path=file_path,
                relative_path=relative_path,
                mtime_ns=st.st_mtime_ns,
                size=st.st_size,
                modified_at=st.st_mtime,
                created_at=_created_at(st),
            )
