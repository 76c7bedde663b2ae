"""Reconstruct a login session's environment from the process table.

logind does not expose a session's environment, so it is recovered from
the processes the session leader spawned. The scan is a single forward
pass in process-table (pid) order with a growing set of matched pids:

    root_set = {leader}
    for proc in table:
        if proc.ppid in root_set and proc has an environment block:
            merge its variables (last write wins)
            root_set.add(proc.pid)

A descendant listed before its matched parent is missed. This is an
approximation of a subtree walk, not a closure.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Tuple

import psutil
from loguru import logger

PROC_ROOT = Path("/proc")


@dataclass(frozen=True)
class ProcessEntry:
    """One row of a process table snapshot.

    Attributes:
        pid: Process id
        ppid: Parent process id
        environ: Raw ``KEY=value`` entries, or None when unreadable
    """

    pid: int
    ppid: int
    environ: Optional[List[str]]


def parse_environment_entry(raw: str) -> Tuple[str, str]:
    """Split a raw ``KEY=value`` entry on the first ``=`` only.

    >>> parse_environment_entry("FOO=bar=baz")
    ('FOO', 'bar=baz')
    """
    key, _sep, value = raw.partition("=")
    return key, value


def read_environment_block(pid: int, proc_root: Path = PROC_ROOT) -> Optional[List[str]]:
    """Read the raw environment block of ``pid`` from procfs.

    Returns:
        List of raw entries (possibly empty), or None if the block could not
        be read (permission denied, process gone).
    """
    try:
        data = (proc_root / str(pid) / "environ").read_bytes()
    except OSError:
        return None
    return [
        entry.decode("utf-8", errors="surrogateescape")
        for entry in data.split(b"\0")
        if entry
    ]


def snapshot_process_table() -> List[ProcessEntry]:
    """Take one snapshot of all live processes in pid order."""
    entries = []
    for proc in psutil.process_iter(["pid", "ppid"]):
        pid = proc.info["pid"]
        ppid = proc.info["ppid"]
        if ppid is None:
            continue
        entries.append(ProcessEntry(pid=pid, ppid=ppid, environ=read_environment_block(pid)))
    return entries


def merge_environment(leader_pid: int, table: Iterable[ProcessEntry]) -> Dict[str, str]:
    """Merge the environments of processes rooted at ``leader_pid``."""
    environment: Dict[str, str] = {}
    root_set = {leader_pid}

    for entry in table:
        if entry.ppid not in root_set or entry.environ is None:
            continue
        for raw in entry.environ:
            key, value = parse_environment_entry(raw)
            environment[key] = value
        root_set.add(entry.pid)

    return environment


class EnvironmentResolver:
    """Resolve a session environment from its leader pid."""

    def __init__(self, snapshot: Callable[[], List[ProcessEntry]] = snapshot_process_table) -> None:
        self._snapshot = snapshot

    def resolve(self, leader_pid: int) -> Dict[str, str]:
        """Return the merged environment; empty when nothing matched."""
        if leader_pid <= 0:
            return {}

        environment = merge_environment(leader_pid, self._snapshot())
        logger.debug("Resolved {} environment variables for leader {}", len(environment), leader_pid)
        return environment
