"""
Process Supervisor

Spawns engine executables with their stdin/stdout redirected to pipes,
watches for process exit, and shuts processes down with a quit handshake
that escalates to a forced kill.

Standard error is never parsed as protocol. It is either discarded or
forwarded line by line to the "chess_cli.engine.stderr" logger.
"""

import itertools
import logging
import os
import shutil
import subprocess
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional, Sequence

from chess_cli.errors import EngineError, SpawnError

logger = logging.getLogger(__name__)
stderr_logger = logging.getLogger("chess_cli.engine.stderr")

_handle_ids = itertools.count(1)

STDERR_MODES = ("discard", "log")


@dataclass(frozen=True)
class EngineHandle:
    """
    Opaque identifier of one running engine instance.

    Ids are unique for the lifetime of the CLI process. The name is only
    for display and does not take part in equality.
    """

    id: int
    name: str = field(default="engine", compare=False)

    def __str__(self) -> str:
        return f"{self.name}#{self.id}"


def resolve_path(path: str) -> str:
    """
    Expand '~' and environment variables in an executable path.

    A bare command name (no directory part) that does not exist relative to
    the working directory is looked up on PATH.

    Raises:
        SpawnError: If an environment variable in the path is not set
    """
    expanded = os.path.expanduser(os.path.expandvars(path))
    if "$" in expanded:
        raise SpawnError(f"unresolved environment variable in engine path: {path}")

    if os.sep not in expanded and not Path(expanded).exists():
        found = shutil.which(expanded)
        if found:
            return found
    return expanded


class EngineProcess:
    """
    A running engine subprocess.

    Attributes:
        handle: EngineHandle assigned at spawn
        executable: Resolved path of the engine binary
    """

    def __init__(self, popen: subprocess.Popen, handle: EngineHandle, executable: str):
        self._popen = popen
        self.handle = handle
        self.executable = executable

        self._terminate_lock = threading.Lock()
        self._watch_lock = threading.Lock()
        self._watchers: List[Callable[[int], None]] = []
        self._watch_thread: Optional[threading.Thread] = None

    def __repr__(self) -> str:
        return f"EngineProcess({self.handle}, pid={self.pid}, returncode={self.returncode})"

    @property
    def pid(self) -> int:
        return self._popen.pid

    @property
    def stdin(self):
        return self._popen.stdin

    @property
    def stdout(self):
        return self._popen.stdout

    @property
    def returncode(self) -> Optional[int]:
        return self._popen.poll()

    def is_running(self) -> bool:
        return self._popen.poll() is None

    def wait(self, timeout: Optional[float] = None) -> Optional[int]:
        """Wait for exit. Returns the exit code, or None on timeout."""
        try:
            return self._popen.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            return None

    def kill(self):
        """Force-kill the process if it is still running."""
        if not self.is_running():
            return
        logger.warning(f"Killing engine {self.handle} (pid={self.pid})")
        try:
            self._popen.kill()
        except ProcessLookupError:
            # Exited between poll() and kill().
            logger.debug(f"Engine {self.handle} already gone")

    def watch(self, callback: Callable[[int], None]):
        """
        Register an exit watcher.

        The callback runs once, on a background thread, with the exit code.
        """
        with self._watch_lock:
            self._watchers.append(callback)
            if self._watch_thread is None:
                self._watch_thread = threading.Thread(
                    target=self._watch_loop, name=f"{self.handle}-watcher", daemon=True
                )
                self._watch_thread.start()

    def _watch_loop(self):
        code = self._popen.wait()
        logger.info(f"Engine {self.handle} exited with code {code}")

        with self._watch_lock:
            watchers = list(self._watchers)

        for callback in watchers:
            try:
                callback(code)
            except Exception:
                logger.exception(f"Exit watcher for {self.handle} failed")


def spawn_engine(
    executable: str,
    working_directory: Optional[str] = None,
    args: Sequence[str] = (),
    stderr: str = "discard",
    name: Optional[str] = None,
) -> EngineProcess:
    """
    Start an engine executable with piped stdin/stdout.

    Args:
        executable: Path to the engine binary ('~' and $VARS are expanded)
        working_directory: Directory holding the engine's weight/data files
        args: Extra command-line arguments
        stderr: "discard" or "log"
        name: Display name for the handle (default: executable stem)

    Returns:
        EngineProcess owning the new subprocess

    Raises:
        SpawnError: If the executable is missing, not executable, the
            working directory does not exist, or the OS refuses to start it
    """
    if stderr not in STDERR_MODES:
        raise ValueError(f"stderr must be one of {STDERR_MODES}, got {stderr!r}")

    path = resolve_path(executable)
    binary = Path(path)

    if not binary.exists():
        raise SpawnError(f"engine executable not found: {path}")
    if not binary.is_file() or not os.access(path, os.X_OK):
        raise SpawnError(f"engine path is not an executable file: {path}")

    cwd = None
    if working_directory is not None:
        cwd = os.path.expanduser(os.path.expandvars(str(working_directory)))
        if not Path(cwd).is_dir():
            raise SpawnError(f"engine working directory not found: {cwd}")

    command = [path, *args]
    try:
        popen = subprocess.Popen(
            command,
            stdin=subprocess.PIPE,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE if stderr == "log" else subprocess.DEVNULL,
            cwd=cwd,
            text=True,
            encoding="utf-8",
            errors="replace",
            bufsize=1,
        )
    except OSError as e:
        raise SpawnError(f"failed to start engine {path}: {e}") from e

    handle = EngineHandle(next(_handle_ids), name or binary.stem)
    logger.info(f"Spawned engine {handle} (pid={popen.pid}): {' '.join(command)}")

    if stderr == "log":
        threading.Thread(
            target=_pump_stderr, args=(popen.stderr, handle), name=f"{handle}-stderr", daemon=True
        ).start()

    return EngineProcess(popen, handle, path)


def _pump_stderr(stream, handle: EngineHandle):
    try:
        for line in stream:
            stderr_logger.debug(f"[{handle}] {line.rstrip()}")
    except (OSError, ValueError) as e:
        stderr_logger.debug(f"[{handle}] stderr closed: {e}")


def terminate_engine(
    process: EngineProcess,
    grace_timeout: float = 2.0,
    send_quit: Optional[Callable[[], None]] = None,
) -> Optional[int]:
    """
    Shut an engine down: quit handshake, then forced kill.

    Idempotent and safe to call concurrently or from shutdown handlers;
    failures of the quit command are logged, never raised.

    Args:
        process: The engine process
        grace_timeout: Seconds to wait after 'quit' before killing
        send_quit: Callable that sends the quit command (skipped if None)

    Returns:
        Exit code, or None if the process could not be reaped
    """
    with process._terminate_lock:
        if not process.is_running():
            return process.returncode

        if send_quit is not None:
            try:
                send_quit()
            except EngineError as e:
                logger.debug(f"Quit command to {process.handle} failed: {e}")

            code = process.wait(timeout=grace_timeout)
            if code is not None:
                logger.info(f"Engine {process.handle} quit cleanly (code {code})")
                return code

            logger.warning(
                f"Engine {process.handle} did not exit within {grace_timeout}s after quit"
            )

        process.kill()
        code = process.wait(timeout=max(grace_timeout, 1.0))
        if code is None:
            logger.error(f"Engine {process.handle} (pid={process.pid}) could not be reaped")
        return code
