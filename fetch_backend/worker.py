"""
Local worker process backend.

Runs the fetch job as a child process. The worker receives the options as a
JSON argument and reports progress by writing one JSON status per stdout
line. This object implements both the command interface and the progress
topic.
"""

import json
import logging
import os
import queue
import shutil
import subprocess
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterator, List, Optional

from .commands import Ack, BackendCommandError, BackendCommands
from .events import EventSource
from .models import (
    ErrorInfo,
    ErrorKind,
    FetchOptions,
    FetchPhase,
    FetchStatus,
    ProgressEvent,
    Provider,
    parse_progress_event,
)

logger = logging.getLogger(__name__)

_CLOSED = object()


@dataclass
class WorkerCommand:
    """Command line used to launch the fetch worker."""
    command: List[str]
    working_directory: str
    api_key_env: str = "FETCH_API_KEY"


class WorkerProcessBackend(BackendCommands, EventSource):
    """Backend that runs the fetch job in a local child process."""

    def __init__(
        self,
        working_directory: Path,
        worker_script: str,
        api_key_lookup: Callable[[Provider], str],
        cancel_grace_seconds: float = 5.0,
    ):
        self.working_directory = working_directory
        self.worker_script = worker_script
        self.cancel_grace_seconds = cancel_grace_seconds
        self._api_key_lookup = api_key_lookup
        self._lock = threading.Lock()
        self._process: Optional[subprocess.Popen] = None
        self._cancelled = False
        self._events: "queue.Queue" = queue.Queue()
        self._seq = 0

    def build_worker_command(self, options: FetchOptions) -> WorkerCommand:
        """Build the command line for one fetch session."""
        # Check if uv is available, fallback to python if not
        uv_path = shutil.which("uv")
        python_path = shutil.which("python") or shutil.which("python3")

        if not python_path and not uv_path:
            raise BackendCommandError("Python not found in PATH")

        options_json = json.dumps(options.to_command_payload(), ensure_ascii=False)
        if uv_path:
            cmd = ["uv", "run", "python", self.worker_script, options_json]
        else:
            cmd = [python_path, self.worker_script, options_json]

        return WorkerCommand(command=cmd, working_directory=str(self.working_directory))

    @property
    def is_running(self) -> bool:
        with self._lock:
            return self._process is not None and self._process.poll() is None

    def start_fetch(self, options: FetchOptions) -> Ack:
        with self._lock:
            if self._process is not None and self._process.poll() is None:
                raise BackendCommandError("A fetch worker is already running")

            worker_cmd = self.build_worker_command(options)
            env = _child_env(worker_cmd.api_key_env, self._api_key_lookup(options.provider))
            try:
                process = subprocess.Popen(
                    worker_cmd.command,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.DEVNULL,
                    text=True,
                    bufsize=1,
                    encoding="utf-8",
                    errors="replace",
                    cwd=worker_cmd.working_directory,
                    env=env,
                )
            except (FileNotFoundError, PermissionError) as e:
                raise BackendCommandError(f"Failed to launch fetch worker: {e}")

            self._process = process
            self._cancelled = False

        logger.info(f"Started fetch worker pid={process.pid}")
        reader = threading.Thread(target=self._pump_output, args=(process,), name="fetch-worker-reader", daemon=True)
        reader.start()
        return Ack(accepted=True, message=f"worker pid {process.pid}")

    def cancel_fetch(self) -> Ack:
        with self._lock:
            process = self._process
            if process is None or process.poll() is not None:
                raise BackendCommandError("No fetch worker is running", retryable=False)
            self._cancelled = True

        logger.info(f"Terminating fetch worker pid={process.pid}")
        process.terminate()
        try:
            process.wait(timeout=self.cancel_grace_seconds)
        except subprocess.TimeoutExpired:
            logger.warning(f"Fetch worker pid={process.pid} ignored terminate, killing")
            process.kill()
        return Ack(accepted=True, message="cancel requested")

    def subscribe(self) -> Iterator[ProgressEvent]:
        while True:
            item = self._events.get()
            if item is _CLOSED:
                return
            yield item

    def close(self) -> None:
        self._events.put(_CLOSED)

    def _emit(self, process: subprocess.Popen, status: FetchStatus) -> None:
        with self._lock:
            if self._process is not process:
                logger.debug(f"Dropping output of replaced fetch worker pid={process.pid}")
                return
            self._publish(status)

    def _publish(self, status: FetchStatus) -> None:
        # Caller holds the lock
        self._seq += 1
        self._events.put(ProgressEvent(seq=self._seq, status=status))

    def _pump_output(self, process: subprocess.Popen) -> None:
        """Read worker stdout line by line and forward status snapshots."""
        last_status: Optional[FetchStatus] = None
        for line in process.stdout:
            clean_line = line.strip()
            if not clean_line:
                continue
            try:
                event = parse_progress_event(clean_line)
            except ValueError:
                logger.debug(f"worker: {clean_line[:500]}")
                continue
            last_status = event.status
            self._emit(process, event.status)

        return_code = process.wait()
        logger.info(f"Fetch worker exited with return code {return_code}")

        with self._lock:
            if self._process is not process:
                # A newer worker owns the topic now
                return
            self._process = None
            if last_status is not None and last_status.phase.is_terminal:
                return

            # The worker died without a terminal snapshot; synthesize one
            base = last_status or FetchStatus()
            if self._cancelled:
                error = ErrorInfo(kind=ErrorKind.CANCELLED, message="Fetch cancelled", retryable=False)
            else:
                error = ErrorInfo.system(f"Fetch worker exited with return code {return_code}")
            self._publish(base.model_copy(update={"phase": FetchPhase.ERROR, "error": error}))


def _child_env(key_name: str, api_key: str) -> dict:
    env = dict(os.environ)
    if api_key:
        env[key_name] = api_key
    return env
