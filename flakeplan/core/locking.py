"""
Concurrent access control for plan output files.

Compilation itself never takes locks: every stage is a pure function over its
inputs. Only writers of a shared output file (for example several CLI runs
writing the same ``plan.json``) need to serialize, and they do so with a
``filelock`` lock placed next to the output file.

Usage:
    from flakeplan.core.locking import output_lock

    with output_lock(Path("out/plan.json"), timeout=30):
        atomic_write(Path("out/plan.json"), payload)
"""

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Union

from filelock import FileLock, Timeout as LockTimeout

logger = logging.getLogger(__name__)


def lock_path_for(output_path: Union[str, Path]) -> Path:
    """Lock file used to guard ``output_path``."""
    output_path = Path(output_path)
    return output_path.with_name(f".{output_path.name}.lock")


@contextmanager
def output_lock(output_path: Union[str, Path], timeout: float = 30):
    """
    Acquire the lock guarding an output file.

    Args:
        output_path: File about to be written
        timeout: Maximum wait time in seconds (default: 30)

    Yields:
        Path of the lock file

    Raises:
        LockTimeout: If lock can't be acquired within timeout
    """
    lock_path = lock_path_for(output_path)
    lock_path.parent.mkdir(parents=True, exist_ok=True)
    lock = FileLock(lock_path, timeout=timeout)

    try:
        with lock:
            logger.debug(f"Acquired output lock: {lock_path}")
            yield lock_path
            logger.debug(f"Released output lock: {lock_path}")
    except LockTimeout as e:
        logger.error(
            f"Could not acquire lock for {output_path} after {timeout}s. "
            "Another flakeplan process may be writing it."
        )
        raise LockTimeout(str(lock_path)) from e


__all__ = ["LockTimeout", "lock_path_for", "output_lock"]
