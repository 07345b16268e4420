"""Background reindexing.

`ReindexQueue` serializes reindex runs: at most one is in flight, and any
number of requests that arrive while it runs collapse into one follow-up
run. Requests never block and failures are only logged.

The CLI feeds the queue with `launch_detached_reindex`, which starts a
`mem index rebuild` child in its own session so a commit hook can return
immediately while the index is rebuilt.
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
import sys
import threading
from collections.abc import Callable
from pathlib import Path

logger = logging.getLogger(__name__)


class ReindexQueue:
    """At most one reindex in flight plus one coalesced follow-up."""

    def __init__(self, run: Callable[[], None]) -> None:
        self._run = run
        self._lock = threading.Lock()
        self._running = False
        self._pending = False
        self._thread: threading.Thread | None = None
        self.runs = 0

    @property
    def busy(self) -> bool:
        with self._lock:
            return self._running

    def request(self) -> None:
        with self._lock:
            if self._running:
                self._pending = True
                return
            self._running = True
            self._thread = threading.Thread(target=self._loop, name="mem-reindex")
            self._thread.start()

    def wait(self, timeout: float | None = None) -> None:
        """Block until the current run (and its follow-up) finishes."""
        thread = self._thread
        if thread is not None:
            thread.join(timeout)

    def _loop(self) -> None:
        while True:
            try:
                self._run()
            except Exception as e:
                logger.error("Reindex failed: %s", e, exc_info=True)
            with self._lock:
                self.runs += 1
                if not self._pending:
                    self._running = False
                    return
                self._pending = False


def _mem_command() -> list[str]:
    mem = shutil.which("mem")
    if mem:
        return [mem]
    return [sys.executable, "-m", "memories"]


def launch_detached_reindex(root: Path, scope: str = "") -> None:
    """Spawn `mem index rebuild` detached from this process and its terminal."""
    cmd = [*_mem_command(), "index", "rebuild"]
    if scope:
        cmd += ["--scope", scope]
    # The hook runs with the code repository's GIT_* variables set.
    env = {k: v for k, v in os.environ.items() if not k.startswith("GIT_")}
    subprocess.Popen(
        cmd,
        cwd=root,
        env=env,
        stdin=subprocess.DEVNULL,
        stdout=subprocess.DEVNULL,
        stderr=subprocess.DEVNULL,
        start_new_session=True,
    )
    logger.debug("Launched detached reindex: %s", " ".join(cmd))
