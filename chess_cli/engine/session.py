"""
Engine Session

Owns one engine process, its line channel and the protocol state machine.

Protocol Flow (UCCI shown, UCI uses uci/uciok):
    Session -> "ucci"
    Engine  -> "id name ElephantEye"
    Engine  -> "option hashsize type spin min 0 max 1024 default 16"
    Engine  -> "ucciok"
    Session -> "isready"
    Engine  -> "readyok"                           HANDSHAKING -> READY
    Session -> "position startpos moves h2e2"
    Session -> "go depth 12"                       READY -> SEARCHING
    Engine  -> "info depth 5 score 25 pv h9g7"
    Session -> "stop"                              SEARCHING -> STOPPING
    Engine  -> "bestmove h9g7 ponder h0g2"         -> READY

Threading:
    - Dispatcher thread: consumes inbound lines, decodes them and applies
      state transitions
    - Exit watcher thread (supervisor): turns process exit into Terminated
    - Caller threads: issue commands
    - Communication: every transition happens under one lock; waiters
      block on a Condition; events go to an unbounded queue in the order
      the transitions happened
"""

import logging
import queue
import threading
from types import MappingProxyType
from typing import Dict, Iterator, Mapping, Optional

import chess.engine

from chess_cli.engine.channel import LineChannel
from chess_cli.engine.config import EngineConfig
from chess_cli.engine.events import (
    BestMoveFound,
    Event,
    OptionsAdvertised,
    SearchInfoUpdated,
    SessionState,
    Terminated,
    TerminationReason,
)
from chess_cli.engine.supervisor import EngineProcess, spawn_engine, terminate_engine
from chess_cli.errors import (
    ChannelClosed,
    EngineTimeout,
    InvalidStateError,
    MalformedMessage,
)
from chess_cli.protocol.codec import (
    decode_line,
    encode_go,
    encode_identify,
    encode_isready,
    encode_newgame,
    encode_position,
    encode_quit,
    encode_setoption,
    encode_stop,
)
from chess_cli.protocol.messages import (
    UCCI,
    BestMove,
    BestMoveLine,
    Bye,
    Dialect,
    HandshakeOk,
    IdLine,
    InfoLine,
    OptionLine,
    Position,
    ReadyOk,
    SearchInfo,
    SearchParameters,
    Unrecognized,
)

logger = logging.getLogger(__name__)

# Time the exit watcher gives the dispatcher to process lines the engine
# wrote just before exiting.
DRAIN_TIMEOUT = 1.0


class EngineSession:
    """
    Protocol session with one engine process.

    Attributes:
        handle: EngineHandle of the underlying process
        dialect: Protocol dialect (UCCI or UCI)

    Methods:
        launch: Spawn an engine from an EngineConfig
        initialize: Run the handshake and wait for READY
        set_position: Replace the position used by the next search
        set_option: Forward an option override
        new_game: Tell the engine a new game starts
        start_search: Send position + go
        wait_for_bestmove: Block until the running search concludes
        stop: Ask the engine to conclude the running search
        quit: Quit handshake, then forced kill
        events: Iterate over session events until Terminated
    """

    def __init__(
        self,
        process: EngineProcess,
        channel: LineChannel,
        dialect: Dialect = UCCI,
        default_search: Optional[SearchParameters] = None,
        handshake_timeout: float = 10.0,
        grace_timeout: float = 2.0,
    ):
        """
        Take ownership of a spawned process and its channel.

        Args:
            process: Running engine process
            channel: Line channel over the process pipes (not yet started)
            dialect: Protocol dialect
            default_search: Limits used when start_search gets none
            handshake_timeout: Seconds allowed for initialize()
            grace_timeout: Seconds allowed for stop and quit
        """
        self.handle = process.handle
        self.dialect = dialect
        self._process = process
        self._channel = channel
        self._default_search = default_search or SearchParameters()
        self._handshake_timeout = handshake_timeout
        self._grace_timeout = grace_timeout

        self._lock = threading.RLock()
        self._cond = threading.Condition(self._lock)
        self._events: "queue.Queue[Event]" = queue.Queue()

        self._state = SessionState.SPAWNING
        self._termination: Optional[TerminationReason] = None
        self._started = False
        self._quit_requested = False
        self._awaiting_readyok = False

        self._options: Dict[str, chess.engine.Option] = {}
        self._engine_id: Dict[str, str] = {}
        self._position = Position.startpos()

        # Per-search state
        self._search_count = 0
        self._infos: Dict[int, SearchInfo] = {}
        self._best_move: Optional[BestMove] = None
        self._stop_watchdog: Optional[threading.Timer] = None

        self._dispatcher = threading.Thread(
            target=self._dispatch_loop, name=f"{self.handle}-dispatch", daemon=True
        )

    @classmethod
    def launch(cls, config: EngineConfig) -> "EngineSession":
        """
        Spawn the configured engine and wrap it in a session.

        The session is not started; call initialize().

        Raises:
            SpawnError: If the engine cannot be started
        """
        process = spawn_engine(
            config.path,
            working_directory=config.working_directory,
            args=config.args,
            stderr=config.stderr,
            name=config.name,
        )
        channel = LineChannel(process.stdin, process.stdout, name=str(process.handle))
        return cls(
            process,
            channel,
            dialect=config.dialect,
            default_search=config.default_search,
            handshake_timeout=config.handshake_timeout,
            grace_timeout=config.grace_timeout,
        )

    def __repr__(self) -> str:
        return f"EngineSession({self.handle}, {self._state.value})"

    def __enter__(self) -> "EngineSession":
        return self

    def __exit__(self, exc_type, exc, tb):
        self.quit()

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def termination(self) -> Optional[TerminationReason]:
        """Why the session ended, or None while it is alive."""
        return self._termination

    @property
    def options(self) -> Mapping[str, chess.engine.Option]:
        with self._lock:
            return MappingProxyType(dict(self._options))

    @property
    def engine_id(self) -> Mapping[str, str]:
        with self._lock:
            return MappingProxyType(dict(self._engine_id))

    @property
    def position(self) -> Position:
        return self._position

    @property
    def best_move(self) -> Optional[BestMove]:
        """Result of the last concluded search."""
        return self._best_move

    @property
    def search_infos(self) -> Mapping[int, SearchInfo]:
        """Latest merged SearchInfo per multi-PV slot of the current search."""
        with self._lock:
            return MappingProxyType(dict(sorted(self._infos.items())))

    @property
    def process(self) -> EngineProcess:
        return self._process

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> "EngineSession":
        """Start the channel, dispatcher and exit watcher; send the identify command."""
        with self._lock:
            if self._started:
                return self
            self._started = True

            self._channel.start()
            self._dispatcher.start()
            self._process.watch(self._on_process_exit)

            if self._state is SessionState.TERMINATED:
                return self

            self._transition(SessionState.HANDSHAKING)
            try:
                self._channel.send(encode_identify(self.dialect))
            except ChannelClosed as e:
                logger.debug(f"[{self.handle}] identify not sent: {e}")
        return self

    def initialize(self, timeout: Optional[float] = None) -> Mapping[str, chess.engine.Option]:
        """
        Run the handshake and wait until the engine is READY.

        Args:
            timeout: Seconds to wait (default: the configured handshake timeout)

        Returns:
            Read-only mapping of advertised options

        Raises:
            EngineTimeout: If the handshake does not finish in time; the
                engine is killed
            ChannelClosed: If the engine terminated during the handshake
        """
        self.start()
        timeout = self._handshake_timeout if timeout is None else timeout

        with self._cond:
            finished = self._cond.wait_for(
                lambda: self._state not in (SessionState.SPAWNING, SessionState.HANDSHAKING),
                timeout,
            )
            if self._state is SessionState.TERMINATED:
                raise ChannelClosed(
                    f"{self.handle} terminated during handshake: {self._termination}"
                )
            if finished:
                return self.options

            self._fail(f"no {self.dialect.identify_ok}/readyok within {timeout}s")
        raise EngineTimeout(f"{self.handle}: handshake timed out after {timeout}s")

    def quit(self, grace_timeout: Optional[float] = None) -> TerminationReason:
        """
        Shut the engine down. Idempotent.

        Sends 'quit', waits up to grace_timeout for the process to exit and
        kills it otherwise. Any search in flight is abandoned.

        Returns:
            The session's TerminationReason
        """
        grace = self._grace_timeout if grace_timeout is None else grace_timeout

        with self._lock:
            if self._state is SessionState.TERMINATED:
                return self._termination
            self._quit_requested = True
            started = self._started
            self._cancel_stop_watchdog()

        logger.info(f"Shutting down engine {self.handle}")
        code = terminate_engine(
            self._process,
            grace_timeout=grace,
            send_quit=self._send_quit if started else None,
        )

        with self._cond:
            if started:
                self._cond.wait_for(
                    lambda: self._state is SessionState.TERMINATED, DRAIN_TIMEOUT + 1.0
                )
            if self._state is not SessionState.TERMINATED:
                self._finish(TerminationReason.requested_quit(code))

        self._channel.close(flush=False)
        return self._termination

    close = quit

    def _send_quit(self):
        self._channel.send(encode_quit())

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def set_position(self, position: Position):
        """
        Replace the position used by the next search.

        Raises:
            InvalidStateError: If the session is not READY
            InvalidCommandError: If the FEN or a move contains a line break
        """
        if not isinstance(position, Position):
            raise TypeError(f"expected Position, got {type(position).__name__}")
        encode_position(position)

        with self._lock:
            self._require(SessionState.READY, action="replace the position")
            self._position = position
            logger.debug(f"[{self.handle}] position set: {encode_position(position)}")

    def set_option(self, name: str, value=None):
        """
        Forward an option override verbatim. value=None presses a button option.

        Raises:
            InvalidStateError: If the session is not READY
            InvalidCommandError: If name or value contains a line break
        """
        line = encode_setoption(name, value, self.dialect)

        with self._lock:
            self._require(SessionState.READY, action="set an option")
            if name not in self._options:
                logger.warning(f"[{self.handle}] option '{name}' was not advertised, sending anyway")
            self._channel.send(line)

    def new_game(self):
        """Send the dialect's new-game command, if it has one."""
        with self._lock:
            self._require(SessionState.READY, action="start a new game")
            line = encode_newgame(self.dialect)
            if line is not None:
                self._channel.send(line)

    def start_search(
        self,
        position: Optional[Position] = None,
        params: Optional[SearchParameters] = None,
    ) -> int:
        """
        Start a search. Only one search may run at a time.

        Args:
            position: Position to search (default: the stored position)
            params: Limits (default: the configured default search)

        Returns:
            Sequence number of this search

        Raises:
            InvalidStateError: If the session is not READY (e.g. a search
                is already running)
            InvalidCommandError: If the position contains a line break
        """
        if position is not None and not isinstance(position, Position):
            raise TypeError(f"expected Position, got {type(position).__name__}")
        if params is not None and not isinstance(params, SearchParameters):
            raise TypeError(f"expected SearchParameters, got {type(params).__name__}")

        with self._lock:
            self._require(SessionState.READY, action="start a search")

            position = position if position is not None else self._position
            params = params if params is not None else self._default_search

            # Both lines are encoded before anything is written.
            position_line = encode_position(position)
            go_line = encode_go(params, self.dialect)

            self._channel.send(position_line)
            self._channel.send(go_line)

            self._position = position
            self._infos = {}
            self._best_move = None
            self._search_count += 1
            self._transition(SessionState.SEARCHING)

            logger.info(f"[{self.handle}] search #{self._search_count} started: {go_line}")
            return self._search_count

    def stop(self, wait: bool = True, timeout: Optional[float] = None) -> Optional[BestMove]:
        """
        Ask the engine to conclude the running search.

        If no bestmove arrives within the grace timeout the engine is
        killed and the session terminates as crashed, whether or not the
        caller waits.

        Args:
            wait: Block until the search concludes
            timeout: Seconds to wait (default: grace timeout plus drain time)

        Returns:
            The BestMove if the search concluded, None otherwise (not
            searching, not waiting, or the engine terminated)

        Raises:
            ChannelClosed: If the session is already terminated
        """
        with self._cond:
            if self._state is SessionState.TERMINATED:
                raise ChannelClosed(f"{self.handle} is terminated: {self._termination}")

            if self._state is SessionState.SEARCHING:
                self._channel.send(encode_stop())
                self._transition(SessionState.STOPPING)
                self._arm_stop_watchdog(self._search_count)
            elif self._state is not SessionState.STOPPING:
                logger.debug(f"[{self.handle}] stop ignored while {self._state.value}")
                return None

            if not wait:
                return None

            if timeout is None:
                timeout = self._grace_timeout + DRAIN_TIMEOUT + 1.0
            self._cond.wait_for(lambda: not self._state.is_searching, timeout)

            if self._state is SessionState.READY:
                return self._best_move
            return None

    def wait_for_bestmove(self, timeout: Optional[float] = None) -> BestMove:
        """
        Block until the current search concludes. Does not stop it.

        Raises:
            EngineTimeout: If the search is still running after timeout
            ChannelClosed: If the engine terminated before a bestmove
            InvalidStateError: If no search was started
        """
        with self._cond:
            if self._state is SessionState.READY and self._best_move is not None:
                return self._best_move
            if not self._state.is_searching and self._state is not SessionState.TERMINATED:
                raise InvalidStateError(f"{self.handle}: no search in progress")

            concluded = self._cond.wait_for(lambda: not self._state.is_searching, timeout)
            if not concluded:
                raise EngineTimeout(f"{self.handle}: no bestmove within {timeout}s")
            if self._state is SessionState.TERMINATED:
                raise ChannelClosed(
                    f"{self.handle} terminated before bestmove: {self._termination}"
                )
            return self._best_move

    # ------------------------------------------------------------------
    # Event stream
    # ------------------------------------------------------------------

    def next_event(self, timeout: Optional[float] = None) -> Optional[Event]:
        """Return the next event, or None if none arrives within timeout."""
        try:
            return self._events.get(timeout=timeout)
        except queue.Empty:
            return None

    def events(self, timeout: Optional[float] = None) -> Iterator[Event]:
        """
        Iterate over events, ending after Terminated.

        With a timeout the iteration also ends when no event arrives in time.
        """
        while True:
            event = self.next_event(timeout)
            if event is None:
                return
            yield event
            if isinstance(event, Terminated):
                return

    # ------------------------------------------------------------------
    # State machine internals (call with the lock held)
    # ------------------------------------------------------------------

    def _require(self, *allowed: SessionState, action: str):
        if self._state is SessionState.TERMINATED:
            raise ChannelClosed(f"{self.handle} is terminated: {self._termination}")
        if self._state not in allowed:
            raise InvalidStateError(
                f"{self.handle}: cannot {action} while {self._state.value}"
            )

    def _transition(self, new_state: SessionState):
        logger.debug(f"[{self.handle}] {self._state.value} -> {new_state.value}")
        self._state = new_state
        self._cond.notify_all()

    def _emit(self, event: Event):
        self._events.put(event)

    def _finish(self, reason: TerminationReason):
        """Enter TERMINATED and publish the one and only Terminated event."""
        if self._state is SessionState.TERMINATED:
            return
        self._cancel_stop_watchdog()
        self._termination = reason
        self._transition(SessionState.TERMINATED)
        self._emit(Terminated(reason))

    def _arm_stop_watchdog(self, search_number: int):
        self._cancel_stop_watchdog()
        timer = threading.Timer(self._grace_timeout, self._on_stop_timeout, args=(search_number,))
        timer.daemon = True
        self._stop_watchdog = timer
        timer.start()

    def _cancel_stop_watchdog(self):
        if self._stop_watchdog is not None:
            self._stop_watchdog.cancel()
            self._stop_watchdog = None

    def _on_stop_timeout(self, search_number: int):
        with self._lock:
            if self._search_count != search_number or self._state is not SessionState.STOPPING:
                return
            logger.error(
                f"[{self.handle}] no bestmove within {self._grace_timeout}s after stop, killing engine"
            )
        self._process.kill()

    def _fail(self, detail: str):
        """Terminate the session for a protocol violation and kill the engine."""
        with self._lock:
            if self._state is SessionState.TERMINATED:
                return
            logger.error(f"[{self.handle}] protocol violation: {detail}")
            self._finish(TerminationReason.protocol_violation(detail))
        self._channel.close(flush=False)
        self._process.kill()

    # ------------------------------------------------------------------
    # Inbound side
    # ------------------------------------------------------------------

    def _dispatch_loop(self):
        for line in self._channel.lines():
            try:
                message = decode_line(line)
            except MalformedMessage as e:
                self._on_malformed(e)
                continue
            self._on_message(message)

        self._on_channel_eof()

    def _on_malformed(self, error: MalformedMessage):
        with self._lock:
            if error.kind == "bestmove" and self._state.is_searching:
                fatal = True
            else:
                fatal = False
                if self._state is not SessionState.TERMINATED:
                    logger.warning(f"[{self.handle}] discarding {error}")
        if fatal:
            self._fail(str(error))

    def _on_message(self, message):
        with self._lock:
            state = self._state
            if state is SessionState.TERMINATED:
                return

            if isinstance(message, InfoLine):
                self._on_info(message)

            elif isinstance(message, BestMoveLine):
                if state.is_searching:
                    self._cancel_stop_watchdog()
                    self._best_move = message.best_move
                    self._transition(SessionState.READY)
                    self._emit(BestMoveFound(message.best_move))
                    logger.info(f"[{self.handle}] bestmove {message.best_move.move}")
                else:
                    logger.warning(f"[{self.handle}] stray bestmove while {state.value}, ignored")

            elif isinstance(message, IdLine):
                if state is SessionState.HANDSHAKING:
                    self._engine_id[message.key] = message.value

            elif isinstance(message, OptionLine):
                if state is SessionState.HANDSHAKING:
                    self._options[message.option.name] = message.option
                else:
                    logger.debug(f"[{self.handle}] late option advertisement ignored")

            elif isinstance(message, HandshakeOk):
                if state is SessionState.HANDSHAKING and not self._awaiting_readyok:
                    self._awaiting_readyok = True
                    try:
                        self._channel.send(encode_isready())
                    except ChannelClosed as e:
                        logger.debug(f"[{self.handle}] isready not sent: {e}")

            elif isinstance(message, ReadyOk):
                if state is SessionState.HANDSHAKING and self._awaiting_readyok:
                    self._awaiting_readyok = False
                    self._transition(SessionState.READY)
                    self._emit(OptionsAdvertised.create(self._options, self._engine_id))
                    logger.info(
                        f"[{self.handle}] ready: {self._engine_id.get('name', 'unknown engine')}, "
                        f"{len(self._options)} options"
                    )

            elif isinstance(message, Bye):
                logger.debug(f"[{self.handle}] engine acknowledged quit")

            elif isinstance(message, Unrecognized):
                if message.line:
                    logger.debug(f"[{self.handle}] ignoring unrecognized line: {message.line}")

    def _on_info(self, message: InfoLine):
        if message.string:
            logger.debug(f"[{self.handle}] info string {message.string}")

        update = message.info
        if update is None:
            return
        if not self._state.is_searching:
            logger.debug(f"[{self.handle}] info outside a search ignored")
            return

        current = self._infos.get(update.multipv)
        merged = current.merge(update) if current is not None else update
        self._infos[update.multipv] = merged
        self._emit(SearchInfoUpdated(merged))

    def _on_channel_eof(self):
        logger.debug(f"[{self.handle}] engine stdout closed")
        if self._process.wait(timeout=self._grace_timeout) is not None:
            return

        with self._lock:
            if self._state is SessionState.TERMINATED:
                return
            logger.error(f"[{self.handle}] engine closed stdout but is still running, killing it")
        self._process.kill()

    def _on_process_exit(self, code: int):
        # Let the dispatcher handle whatever the engine wrote before exiting.
        if threading.current_thread() is not self._dispatcher and self._dispatcher.is_alive():
            self._dispatcher.join(timeout=DRAIN_TIMEOUT)

        with self._lock:
            if self._state is SessionState.TERMINATED:
                return
            if self._quit_requested:
                reason = TerminationReason.requested_quit(code)
            else:
                reason = TerminationReason.crashed(code)
                logger.error(
                    f"[{self.handle}] engine exited unexpectedly with code {code} "
                    f"while {self._state.value}"
                )
            self._finish(reason)

        self._channel.close(flush=False)
