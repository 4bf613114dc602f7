"""
Session States and Events

The Engine Session publishes a typed event stream; consumers match on the
event class instead of re-parsing protocol text.

Events:
    OptionsAdvertised   handshake finished, options and id are known
    SearchInfoUpdated   merged SearchInfo for one multi-PV slot
    BestMoveFound       search concluded
    Terminated          session is over; always the last event
"""

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Mapping, Optional

import chess.engine

from chess_cli.protocol.messages import BestMove, SearchInfo


class SessionState(Enum):
    """
    Protocol state of one engine session.

    Transitions:
        SPAWNING -> HANDSHAKING       identify command sent
        HANDSHAKING -> READY          ack + readyok received
        READY -> SEARCHING            start_search
        SEARCHING -> STOPPING         stop
        SEARCHING|STOPPING -> READY   bestmove received
        any -> TERMINATED             pipe closed, process exit, violation
    """
    SPAWNING = "spawning"
    HANDSHAKING = "handshaking"
    READY = "ready"
    SEARCHING = "searching"
    STOPPING = "stopping"
    TERMINATED = "terminated"

    @property
    def is_searching(self) -> bool:
        return self in (SessionState.SEARCHING, SessionState.STOPPING)


class TerminationKind(Enum):
    REQUESTED_QUIT = "requested_quit"
    CRASHED = "crashed"
    PROTOCOL_VIOLATION = "protocol_violation"


@dataclass(frozen=True)
class TerminationReason:
    """
    Why a session ended.

    Attributes:
        kind: REQUESTED_QUIT, CRASHED or PROTOCOL_VIOLATION
        exit_code: Process exit code, when known
        detail: Diagnostic text for protocol violations
    """

    kind: TerminationKind
    exit_code: Optional[int] = None
    detail: Optional[str] = None

    @classmethod
    def requested_quit(cls, exit_code: Optional[int] = None) -> "TerminationReason":
        return cls(TerminationKind.REQUESTED_QUIT, exit_code)

    @classmethod
    def crashed(cls, exit_code: Optional[int]) -> "TerminationReason":
        return cls(TerminationKind.CRASHED, exit_code)

    @classmethod
    def protocol_violation(cls, detail: str) -> "TerminationReason":
        return cls(TerminationKind.PROTOCOL_VIOLATION, detail=detail)

    def __str__(self) -> str:
        if self.kind is TerminationKind.PROTOCOL_VIOLATION:
            return f"protocol violation: {self.detail}"
        if self.kind is TerminationKind.CRASHED:
            return f"crashed (exit code {self.exit_code})"
        return "quit"


class Event:
    """Base class for session events."""


@dataclass(frozen=True)
class OptionsAdvertised(Event):
    """
    Attributes:
        options: Read-only mapping of option name -> chess.engine.Option
        engine_id: Read-only mapping from 'id' lines ("name", "author")
    """

    options: Mapping[str, chess.engine.Option]
    engine_id: Mapping[str, str]

    @classmethod
    def create(cls, options: dict, engine_id: dict) -> "OptionsAdvertised":
        return cls(MappingProxyType(dict(options)), MappingProxyType(dict(engine_id)))


@dataclass(frozen=True)
class SearchInfoUpdated(Event):
    info: SearchInfo


@dataclass(frozen=True)
class BestMoveFound(Event):
    best_move: BestMove


@dataclass(frozen=True)
class Terminated(Event):
    reason: TerminationReason
