"""
Per-domain locking.

Only one coordinator may write a domain's progress record. Each run
takes an flock on <state_dir>/locks/<domain>.lock for every domain it
owns; coordinators on disjoint domains run side by side.
"""

import fcntl
import logging
import os
import time
from contextlib import ExitStack, contextmanager
from pathlib import Path

from storyloop.lib.errors import StoryloopError

logger = logging.getLogger(__name__)


class LockTimeout(StoryloopError):
    """Lock acquisition timed out."""


def is_domain_locked(lock_dir: Path, domain: str) -> bool:
    """True if another process currently holds the domain lock."""
    lock_file = lock_dir / f"{domain}.lock"
    if not lock_file.exists():
        return False

    with open(lock_file, 'r') as fd:
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            return True
        fcntl.flock(fd, fcntl.LOCK_UN)
    return False


@contextmanager
def _acquire_lock(lock_file: Path, timeout: int, lock_name: str):
    """
    Acquire an exclusive file lock, polling once a second.

    Lock files are never deleted: removing one lets two processes hold
    "exclusive" locks on different inodes with the same path.
    """
    lock_file.parent.mkdir(parents=True, exist_ok=True)

    fd = open(lock_file, 'w')
    start = time.time()

    while True:
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
            break
        except BlockingIOError:
            if time.time() - start >= timeout:
                fd.close()
                raise LockTimeout(f"Could not acquire {lock_name} within {timeout}s")
            time.sleep(1)

    try:
        fd.write(f"{os.getpid()}\n")
        fd.flush()
        logger.debug(f"Acquired {lock_name}")
        yield
    finally:
        try:
            fcntl.flock(fd, fcntl.LOCK_UN)
        finally:
            fd.close()


@contextmanager
def domain_lock(lock_dir: Path, domain: str, timeout: int = 60):
    """Hold the lock for one domain."""
    with _acquire_lock(lock_dir / f"{domain}.lock", timeout, f"lock for domain {domain}"):
        yield


@contextmanager
def domains_lock(lock_dir: Path, domains: set[str], timeout: int = 60):
    """Hold locks for several domains, taken in sorted order to avoid deadlock."""
    with ExitStack() as stack:
        for domain in sorted(domains):
            stack.enter_context(domain_lock(lock_dir, domain, timeout))
        yield
