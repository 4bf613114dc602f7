"""
Engine Core Exceptions

Every failure raised by the engine communication core derives from
EngineError so callers can catch the whole family at once.

Hierarchy:
    EngineError
    ├── SpawnError            executable missing / not runnable
    ├── ChannelClosed         pipe ended or session already terminated
    ├── ProtocolViolation     semantically required message malformed
    │   └── MalformedMessage  a recognised line failed to decode
    ├── InvalidCommandError   outbound text would break the line framing
    ├── InvalidStateError     command not allowed in the session state
    ├── EngineTimeout         bounded wait expired
    └── SessionError
        ├── SessionNotFound   unknown handle
        └── SessionClosed     handle destroyed or engine terminated

None of these are retried by the core. A crashed engine is reported as a
Terminated event rather than an exception, since no caller may be waiting.
"""


class EngineError(Exception):
    """Base class for all engine core errors."""


class SpawnError(EngineError):
    """The engine executable could not be started."""


class ChannelClosed(EngineError):
    """The line channel (or the session owning it) is closed."""


class ProtocolViolation(EngineError):
    """The engine broke the protocol in a way the session cannot recover from."""


class MalformedMessage(ProtocolViolation):
    """
    A recognised protocol line could not be decoded.

    Attributes:
        kind: Message kind selected by the first token (e.g. "bestmove")
        line: The raw line as received
        detail: What was wrong with it
    """

    def __init__(self, kind: str, line: str, detail: str):
        super().__init__(f"malformed {kind} line ({detail}): {line!r}")
        self.kind = kind
        self.line = line
        self.detail = detail


class InvalidCommandError(EngineError, ValueError):
    """Outbound command text is not representable on a line-oriented wire."""


class InvalidStateError(EngineError):
    """The command is not accepted in the session's current state."""


class EngineTimeout(EngineError, TimeoutError):
    """A bounded wait on the engine expired."""


class SessionError(EngineError):
    """Base class for registry routing errors."""

    def __init__(self, handle, message: str):
        super().__init__(f"{message}: {handle}")
        self.handle = handle


class SessionNotFound(SessionError):
    """No session was ever registered under the handle."""

    def __init__(self, handle):
        super().__init__(handle, "unknown engine handle")


class SessionClosed(SessionError):
    """The session behind the handle was destroyed or has terminated."""

    def __init__(self, handle):
        super().__init__(handle, "engine session is closed")
