"""
Engine Module

Process lifecycle, line channel, protocol state machine and multi-engine
registry for external Chinese-chess engines.

Key Components:
    - spawn_engine / terminate_engine: subprocess start and quit-then-kill
    - LineChannel: threaded duplex line streams over the engine pipes
    - EngineSession: handshake, position, search, stop, quit + event stream
    - SessionRegistry: sessions keyed by EngineHandle, fan-in of events
    - EngineConfig: per-engine configuration
"""

from chess_cli.engine.channel import LineChannel
from chess_cli.engine.config import EngineConfig
from chess_cli.engine.events import (
    SessionState,
    TerminationKind,
    TerminationReason,
    Event,
    OptionsAdvertised,
    SearchInfoUpdated,
    BestMoveFound,
    Terminated,
)
from chess_cli.engine.registry import (
    SessionRegistry,
    Command,
    NewPosition,
    StartSearch,
    Stop,
    SetOption,
    NewGame,
    Quit,
)
from chess_cli.engine.session import EngineSession
from chess_cli.engine.supervisor import (
    EngineHandle,
    EngineProcess,
    spawn_engine,
    terminate_engine,
)

__all__ = [
    "LineChannel",
    "EngineConfig",
    "SessionState",
    "TerminationKind",
    "TerminationReason",
    "Event",
    "OptionsAdvertised",
    "SearchInfoUpdated",
    "BestMoveFound",
    "Terminated",
    "SessionRegistry",
    "Command",
    "NewPosition",
    "StartSearch",
    "Stop",
    "SetOption",
    "NewGame",
    "Quit",
    "EngineSession",
    "EngineHandle",
    "EngineProcess",
    "spawn_engine",
    "terminate_engine",
]
