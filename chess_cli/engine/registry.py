"""
Session Registry

Holds the running engine sessions keyed by EngineHandle, routes commands to
them and fans their events into one stream for the presentation layer.

Sessions are independent: the registry lock only guards the handle table,
and every session keeps its own lock, threads and event queue. Events of
one handle keep their order; events of different handles may interleave.
"""

import logging
import queue
import threading
from dataclasses import dataclass
from typing import Callable, Dict, Iterator, List, Optional, Set, Tuple

from chess_cli.engine.config import EngineConfig
from chess_cli.engine.events import Event, Terminated
from chess_cli.engine.session import EngineSession
from chess_cli.engine.supervisor import EngineHandle
from chess_cli.errors import ChannelClosed, EngineError, SessionClosed, SessionNotFound
from chess_cli.protocol.messages import BestMove, Position, SearchParameters

logger = logging.getLogger(__name__)


# ============================================================================
# Commands
# ============================================================================


class Command:
    """Base class for commands routed through the registry."""


@dataclass(frozen=True)
class NewPosition(Command):
    position: Position


@dataclass(frozen=True)
class StartSearch(Command):
    """Start a search; None fields fall back to the session defaults."""

    position: Optional[Position] = None
    params: Optional[SearchParameters] = None


@dataclass(frozen=True)
class Stop(Command):
    """Stop the running search; with wait=True block until it concludes."""

    wait: bool = False


@dataclass(frozen=True)
class SetOption(Command):
    name: str
    value: object = None


@dataclass(frozen=True)
class NewGame(Command):
    pass


@dataclass(frozen=True)
class Quit(Command):
    """Destroy the session behind the handle."""

    grace_timeout: Optional[float] = None


# ============================================================================
# Registry
# ============================================================================


class SessionRegistry:
    """
    Owns zero or more engine sessions.

    Methods:
        create: Spawn, handshake and register an engine
        command: Route a Command to a session
        events: Fan-in stream of (handle, event)
        destroy: Quit one engine and forget its handle
        shutdown_all: Quit every engine (call before the CLI exits)
    """

    def __init__(self, launcher: Callable[[EngineConfig], EngineSession] = EngineSession.launch):
        """
        Args:
            launcher: Builds an unstarted session from a config
        """
        self._launcher = launcher
        self._lock = threading.Lock()
        self._sessions: Dict[EngineHandle, EngineSession] = {}
        self._pending: Dict[EngineHandle, EngineSession] = {}
        self._closed: Set[EngineHandle] = set()
        self._shut_down = False
        self._events: "queue.Queue[Tuple[EngineHandle, Event]]" = queue.Queue()

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def __contains__(self, handle) -> bool:
        with self._lock:
            return handle in self._sessions

    def __enter__(self) -> "SessionRegistry":
        return self

    def __exit__(self, exc_type, exc, tb):
        self.shutdown_all()

    def handles(self) -> List[EngineHandle]:
        with self._lock:
            return list(self._sessions)

    def create(self, config: EngineConfig) -> EngineHandle:
        """
        Launch an engine, run the handshake and apply the config's options.

        If anything fails the engine process is shut down before the error
        propagates. A session still starting when shutdown_all() runs is shut
        down too, and create() then raises SessionClosed.

        Raises:
            SpawnError: If the engine cannot be started
            EngineTimeout: If the handshake does not finish in time
            ChannelClosed: If the engine dies during the handshake
            SessionClosed: If the registry was shut down meanwhile
        """
        session = self._launcher(config)
        handle = session.handle
        logger.info(f"Creating engine session {handle}")

        with self._lock:
            accepted = not self._shut_down
            if accepted:
                self._pending[handle] = session
        if not accepted:
            session.quit(grace_timeout=0)
            raise SessionClosed(handle)

        try:
            session.initialize()
            for name, value in config.options.items():
                session.set_option(name, value)
        except BaseException as e:
            logger.error(f"Engine {handle} failed to initialize, shutting it down")
            self._abandon(session)
            if isinstance(e, ChannelClosed) and self._shut_down:
                raise SessionClosed(handle) from e
            raise

        with self._lock:
            self._pending.pop(handle, None)
            registered = not self._shut_down
            if registered:
                self._sessions[handle] = session
        if not registered:
            session.quit(grace_timeout=0)
            raise SessionClosed(handle)

        threading.Thread(
            target=self._forward_events, args=(handle, session), name=f"{handle}-events", daemon=True
        ).start()
        return handle

    def _abandon(self, session: EngineSession):
        with self._lock:
            self._pending.pop(session.handle, None)
        session.quit(grace_timeout=0)

    def get(self, handle: EngineHandle) -> EngineSession:
        """
        Look up a live session.

        Raises:
            SessionNotFound: If the handle was never registered
            SessionClosed: If the session was destroyed or has terminated
        """
        with self._lock:
            session = self._sessions.get(handle)
            if session is None:
                if handle in self._closed:
                    raise SessionClosed(handle)
                raise SessionNotFound(handle)
        return session

    def command(self, handle: EngineHandle, command: Command) -> Optional[BestMove]:
        """
        Route a command to the session behind handle.

        Returns:
            The BestMove for a waiting Stop that concluded, otherwise None

        Raises:
            SessionNotFound, SessionClosed: Routing failures
            InvalidStateError: Command not allowed in the session state
            InvalidCommandError: Command text would break the line framing
        """
        session = self.get(handle)

        if isinstance(command, Quit):
            self.destroy(handle, command.grace_timeout)
            return None

        try:
            if isinstance(command, NewPosition):
                session.set_position(command.position)
            elif isinstance(command, StartSearch):
                session.start_search(command.position, command.params)
            elif isinstance(command, Stop):
                return session.stop(wait=command.wait)
            elif isinstance(command, SetOption):
                session.set_option(command.name, command.value)
            elif isinstance(command, NewGame):
                session.new_game()
            else:
                raise TypeError(f"unknown command: {command!r}")
        except ChannelClosed as e:
            raise SessionClosed(handle) from e
        return None

    def destroy(self, handle: EngineHandle, grace_timeout: Optional[float] = None):
        """
        Quit the engine behind handle and remove it. Later commands to the
        handle fail with SessionClosed.

        Raises:
            SessionNotFound: If the handle was never registered
        """
        with self._lock:
            session = self._sessions.pop(handle, None)
            if session is None:
                if handle in self._closed:
                    return
                raise SessionNotFound(handle)
            self._closed.add(handle)

        reason = session.quit(grace_timeout)
        logger.info(f"Engine session {handle} destroyed: {reason}")

    def shutdown_all(self, grace_timeout: Optional[float] = None):
        """
        Quit every engine, including ones still starting. No engine process
        outlives this call, and later create() calls raise SessionClosed.
        """
        with self._lock:
            self._shut_down = True
            handles = list(self._sessions)
            starting = list(self._pending.values())
        if handles or starting:
            logger.info(f"Shutting down {len(handles) + len(starting)} engine session(s)")

        threads = []
        for handle in handles:
            threads.append(threading.Thread(
                target=self._destroy_quietly, args=(handle, grace_timeout), daemon=True
            ))
        for session in starting:
            threads.append(threading.Thread(
                target=self._quit_quietly, args=(session, grace_timeout), daemon=True
            ))
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

    def _destroy_quietly(self, handle: EngineHandle, grace_timeout: Optional[float]):
        try:
            self.destroy(handle, grace_timeout)
        except EngineError as e:
            logger.error(f"Failed to shut down {handle}: {e}")

    def _quit_quietly(self, session: EngineSession, grace_timeout: Optional[float]):
        try:
            session.quit(grace_timeout)
        except EngineError as e:
            logger.error(f"Failed to shut down {session.handle}: {e}")

    def next_event(self, timeout: Optional[float] = None) -> Optional[Tuple[EngineHandle, Event]]:
        """Return the next (handle, event), or None if none arrives within timeout."""
        try:
            return self._events.get(timeout=timeout)
        except queue.Empty:
            return None

    def events(self, timeout: Optional[float] = None) -> Iterator[Tuple[EngineHandle, Event]]:
        """
        Iterate over (handle, event) pairs from all sessions.

        Blocks indefinitely without a timeout; with one, ends when no event
        arrives in time.
        """
        while True:
            item = self.next_event(timeout)
            if item is None:
                return
            yield item

    def _forward_events(self, handle: EngineHandle, session: EngineSession):
        for event in session.events():
            if isinstance(event, Terminated):
                # Invalidate the handle before anyone sees the event.
                with self._lock:
                    if self._sessions.pop(handle, None) is not None:
                        self._closed.add(handle)
            self._events.put((handle, event))
