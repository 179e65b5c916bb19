"""
Temporarily moving directories out of a project during resolution.
"""

import os
import shutil
import stat
import sys
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, Union

from .error_handling import ErrorCategory, get_error_handler

PathLike = Union[str, Path]


@contextmanager
def stash_directories(*directories: PathLike) -> Iterator[Dict[Path, Path]]:
    """
    Move the given existing directories to a temporary location.

    On exit, whatever was created at the original locations in the meantime is
    removed and the stashed directories are moved back, also when the body
    raised. Yields the mapping of original to stashed location.
    """
    stashed: Dict[Path, Path] = {}
    stash_root = Path(tempfile.mkdtemp(prefix="depforest-stash-"))

    try:
        for index, directory in enumerate(Path(d) for d in directories):
            if not directory.is_dir():
                continue
            target = stash_root / str(index)
            shutil.move(str(directory), str(target))
            stashed[directory] = target

        yield stashed
    finally:
        for original, target in stashed.items():
            if original.exists():
                remove_tree(original)
            shutil.move(str(target), str(original))
        shutil.rmtree(stash_root, ignore_errors=True)


def remove_tree(path: PathLike) -> None:
    """Delete a directory tree, including read-only files like the Go module cache."""

    def make_writable_and_retry(function, failed_path, _exc):
        os.chmod(failed_path, stat.S_IWRITE | stat.S_IREAD | stat.S_IEXEC)
        parent = os.path.dirname(failed_path)
        os.chmod(parent, stat.S_IWRITE | stat.S_IREAD | stat.S_IEXEC)
        function(failed_path)

    path = Path(path)
    if not path.exists():
        return

    try:
        if sys.version_info >= (3, 12):
            shutil.rmtree(path, onexc=make_writable_and_retry)
        else:
            shutil.rmtree(path, onerror=make_writable_and_retry)
    except OSError as e:
        get_error_handler().warning(
            ErrorCategory.FILESYSTEM,
            f"Could not remove directory: {e}",
            "stash",
            "remove_tree",
            exception=e,
            details={"path": path.name},
        )
