"""Process-tree termination and ownership tracking for spawned browsers.

Browsers fork helper processes (GPU, renderer, zygote), so killing only the
top-level pid leaves orphans behind.  On POSIX the browser is started in its
own session and the whole process group is signalled; on Windows
``taskkill /T`` walks the process tree.  The implementation is picked once
via :func:`get_process_terminator`; call sites never branch on platform.
"""

from __future__ import annotations

import logging
import os
import signal
import subprocess
import sys
import threading
from abc import ABC, abstractmethod

logger = logging.getLogger(__name__)


class ProcessTreeTerminator(ABC):
    """Platform capability for signalling whole process trees."""

    @abstractmethod
    def terminate_tree(self, pid: int) -> None:
        """Kill *pid* and every descendant.  Raises ``OSError`` on failure."""

    @abstractmethod
    def is_running(self, pid: int) -> bool:
        """Return True if a process with *pid* exists."""

    @abstractmethod
    def popen_kwargs(self) -> dict:
        """Extra ``subprocess.Popen`` kwargs that detach a child into its own group."""


class PosixProcessTreeTerminator(ProcessTreeTerminator):
    def terminate_tree(self, pid: int) -> None:
        # start_new_session=True makes the child a group leader, so pgid == pid
        os.killpg(pid, signal.SIGTERM)

    def is_running(self, pid: int) -> bool:
        try:
            os.kill(pid, 0)
        except ProcessLookupError:
            return False
        except PermissionError:
            return True
        return True

    def popen_kwargs(self) -> dict:
        return {"start_new_session": True}


class WindowsProcessTreeTerminator(ProcessTreeTerminator):
    def terminate_tree(self, pid: int) -> None:
        subprocess.Popen(
            ["taskkill", "/pid", str(pid), "/T", "/F"],
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
        )

    def is_running(self, pid: int) -> bool:
        out = subprocess.run(
            ["tasklist", "/FI", f"PID eq {pid}", "/NH"],
            capture_output=True,
            text=True,
            check=False,
        ).stdout
        return str(pid) in out

    def popen_kwargs(self) -> dict:
        return {"creationflags": getattr(subprocess, "CREATE_NEW_PROCESS_GROUP", 0)}


def get_process_terminator(system: str | None = None) -> ProcessTreeTerminator:
    """Pick the terminator implementation for *system* (defaults to this platform)."""
    system = system or sys.platform
    if system.startswith("win"):
        return WindowsProcessTreeTerminator()
    return PosixProcessTreeTerminator()


def terminate_process_tree(
    process: subprocess.Popen | None,
    terminator: ProcessTreeTerminator | None = None,
) -> None:
    """Best-effort kill of *process* and its descendants.  Never raises."""
    if process is None or not process.pid:
        return
    terminator = terminator or get_process_terminator()
    try:
        terminator.terminate_tree(process.pid)
    except Exception as exc:
        logger.debug("Process-tree kill for pid=%s failed (%s); killing pid only", process.pid, exc)
        try:
            process.kill()
        except Exception:
            logger.debug("Direct kill for pid=%s failed", process.pid)


class ProcessRegistry:
    """Ownership registry for browser processes spawned by this process.

    Every component that can spawn a browser receives the registry, registers
    what it launched, and releases it on its own exit path.  ``release_all``
    is idempotent and is called on every exit path of the owning process
    (normal return, error, signal).
    """

    def __init__(self, terminator: ProcessTreeTerminator | None = None) -> None:
        self._terminator = terminator or get_process_terminator()
        self._processes: dict[int, subprocess.Popen] = {}
        self._lock = threading.Lock()

    def add(self, process: subprocess.Popen) -> None:
        with self._lock:
            self._processes[process.pid] = process

    def discard(self, process: subprocess.Popen) -> None:
        with self._lock:
            self._processes.pop(process.pid, None)

    def release(self, process: subprocess.Popen) -> None:
        """Terminate one owned process tree and forget it."""
        self.discard(process)
        terminate_process_tree(process, self._terminator)

    def release_all(self) -> None:
        """Terminate every owned process tree.  Safe to call repeatedly."""
        with self._lock:
            owned = list(self._processes.values())
            self._processes.clear()
        for process in owned:
            terminate_process_tree(process, self._terminator)

    @property
    def terminator(self) -> ProcessTreeTerminator:
        return self._terminator

    @property
    def pids(self) -> list[int]:
        with self._lock:
            return list(self._processes)

    def __len__(self) -> int:
        with self._lock:
            return len(self._processes)
