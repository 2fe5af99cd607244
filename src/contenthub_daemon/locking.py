"""Daemon single-instance lock."""

import fcntl
import os
import sys
from pathlib import Path


class DaemonLock:
    """Prevents multiple daemon instances via fcntl file lock."""

    def __init__(self, pid_file: Path | None = None):
        if pid_file is None:
            state_home = os.environ.get(
                "XDG_STATE_HOME", str(Path.home() / ".local/state")
            )
            pid_file = Path(state_home) / "contenthub" / "daemon.pid"
        self.pid_file = pid_file
        self._handle = None

    def __enter__(self):
        self.pid_file.parent.mkdir(parents=True, exist_ok=True)
        self._handle = open(self.pid_file, "w")
        try:
            fcntl.flock(self._handle, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            self._handle.close()
            sys.exit("Daemon already running")
        self._handle.write(str(os.getpid()))
        self._handle.flush()
        return self

    def __exit__(self, *_):
        if self._handle is not None:
            fcntl.flock(self._handle, fcntl.LOCK_UN)
            self._handle.close()
            self._handle = None


def acquire_daemon_lock():
    """Convenience function for use with 'with' statement."""
    return DaemonLock()
