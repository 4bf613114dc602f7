"""
Protocol Values and Messages

Immutable values exchanged with an engine (positions, search parameters,
search info, best moves) and the closed set of decoded inbound messages.

The engine is the only party that understands the board. Move tokens and
FEN strings are carried verbatim and never interpreted here.

Dialects:
    Two UCI-family dialects are supported. UCCI is the Chinese-chess
    protocol used by engines such as ElephantEye; UCI is spoken by
    Pikafish and most modern xiangqi engines. They differ only in a handful
    of tokens, captured by the Dialect table below.
"""

from dataclasses import dataclass, field, fields, replace
from typing import Dict, Optional, Tuple

import chess.engine


# ============================================================================
# Dialects
# ============================================================================


@dataclass(frozen=True)
class Dialect:
    """
    Token vocabulary of one protocol dialect.

    Attributes:
        name: Dialect name as written in engine configuration
        identify: Identification command sent to start the handshake
        identify_ok: Sentinel ending the id/option advertisement
        movetime_tokens: Tokens used by 'go' for a fixed time per move
        keyword_setoption: True for 'setoption name X value Y' (UCI),
            False for 'setoption X Y' (UCCI)
        newgame: New-game command, or None if the dialect has none
        quit_ack: Line the engine prints before exiting on 'quit', if any
    """

    name: str
    identify: str
    identify_ok: str
    movetime_tokens: Tuple[str, ...]
    keyword_setoption: bool
    newgame: Optional[str] = None
    quit_ack: Optional[str] = None


UCCI = Dialect(
    name="ucci",
    identify="ucci",
    identify_ok="ucciok",
    # UCCI has no fixed-movetime mode; a single move left in the time
    # control makes the engine spend the whole budget on this move.
    movetime_tokens=("time", "{ms}", "movestogo", "1"),
    keyword_setoption=False,
    quit_ack="bye",
)

UCI = Dialect(
    name="uci",
    identify="uci",
    identify_ok="uciok",
    movetime_tokens=("movetime", "{ms}"),
    keyword_setoption=True,
    newgame="ucinewgame",
)

DIALECTS: Dict[str, Dialect] = {d.name: d for d in (UCCI, UCI)}


def get_dialect(name: str) -> Dialect:
    """
    Look up a dialect by its configuration name (case-insensitive).

    Raises:
        ValueError: If the dialect is unknown
    """
    try:
        return DIALECTS[name.lower()]
    except KeyError:
        raise ValueError(
            f"unknown protocol '{name}', expected one of {sorted(DIALECTS)}"
        ) from None


# ============================================================================
# Values
# ============================================================================


@dataclass(frozen=True)
class Position:
    """
    Board state as the engine understands it.

    Attributes:
        fen: FEN-equivalent board string, or None for the standard start
        moves: Move tokens applied since that board, in order
    """

    fen: Optional[str] = None
    moves: Tuple[str, ...] = ()

    def __post_init__(self):
        # A bare string would otherwise be split into one-character moves.
        if isinstance(self.moves, str):
            raise TypeError(f"moves must be a sequence of move tokens, not a string: {self.moves!r}")
        object.__setattr__(self, "moves", tuple(self.moves))

    @classmethod
    def startpos(cls, moves=()) -> "Position":
        return cls(None, moves)

    @classmethod
    def from_fen(cls, fen: str, moves=()) -> "Position":
        return cls(fen, moves)

    @property
    def is_startpos(self) -> bool:
        return self.fen is None

    def after(self, *moves: str) -> "Position":
        """Return a new position with extra moves appended."""
        return replace(self, moves=self.moves + tuple(moves))


@dataclass(frozen=True)
class SearchParameters:
    """
    Limits for one search. At most one strategy may be set.

    Attributes:
        depth: Ply limit
        movetime: Milliseconds for this move
        nodes: Node-count limit
        infinite: Search until 'stop'

    With nothing set a bare 'go' is issued and the engine picks its own
    limit.
    """

    depth: Optional[int] = None
    movetime: Optional[int] = None
    nodes: Optional[int] = None
    infinite: bool = False

    def __post_init__(self):
        active = [
            name
            for name in ("depth", "movetime", "nodes")
            if getattr(self, name) is not None
        ]
        if self.infinite:
            active.append("infinite")

        if len(active) > 1:
            raise ValueError(
                f"only one search limit may be set, got {', '.join(active)}"
            )

        for name in ("depth", "movetime", "nodes"):
            value = getattr(self, name)
            if value is None:
                continue
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValueError(f"{name} must be an integer, got {value!r}")
            if value <= 0:
                raise ValueError(f"{name} must be positive, got {value}")

    @property
    def strategy(self) -> Optional[str]:
        """Name of the active limit, or None for a bare 'go'."""
        if self.infinite:
            return "infinite"
        for name in ("depth", "movetime", "nodes"):
            if getattr(self, name) is not None:
                return name
        return None


@dataclass(frozen=True)
class SearchInfo:
    """
    Latest search report for one multi-PV slot.

    Engines may split a report across several info lines, so every field
    except multipv is optional and records are merged field by field.

    Attributes:
        multipv: 1-based rank of this line
        depth: Nominal depth reached
        seldepth: Selective depth reached
        score: chess.engine.Cp or chess.engine.Mate, from the side to move
        score_bound: "lowerbound" or "upperbound" for fail-high/low scores
        pv: Principal variation as move tokens
        nodes: Nodes searched
        nps: Nodes per second
        time: Milliseconds searched
        hashfull: Hash table fill, per mille
        currmove: Root move currently searched
    """

    multipv: int = 1
    depth: Optional[int] = None
    seldepth: Optional[int] = None
    score: Optional[chess.engine.Score] = None
    score_bound: Optional[str] = None
    pv: Optional[Tuple[str, ...]] = None
    nodes: Optional[int] = None
    nps: Optional[int] = None
    time: Optional[int] = None
    hashfull: Optional[int] = None
    currmove: Optional[str] = None

    def merge(self, update: "SearchInfo") -> "SearchInfo":
        """Return a copy with every field set in `update` taking precedence."""
        changes = {
            f.name: getattr(update, f.name)
            for f in fields(update)
            if getattr(update, f.name) is not None
        }
        # A new score without a bound clears the old bound.
        if update.score is not None and update.score_bound is None:
            changes["score_bound"] = None
        return replace(self, **changes)

    @property
    def is_mate(self) -> bool:
        """Check if the score is a forced-mate distance."""
        return self.score is not None and self.score.is_mate()

    def to_centipawns(self, clamp: int = 10000) -> Optional[int]:
        """
        Convert the score to centipawns with clamping.

        Mate scores map to +/-clamp. Returns None when no score was reported.
        """
        if self.score is None:
            return None
        if self.is_mate:
            mate = self.score.mate()
            return clamp if mate > 0 else -clamp
        return max(-clamp, min(clamp, self.score.score()))


@dataclass(frozen=True)
class BestMove:
    """
    Terminal result of a search.

    Attributes:
        move: Best move token, or None if the engine had no move to play
        ponder: Expected reply, if the engine suggested one
        draw_offer: UCCI 'bestmove ... draw' suffix
        resign: UCCI 'bestmove ... resign' suffix
    """

    move: Optional[str]
    ponder: Optional[str] = None
    draw_offer: bool = False
    resign: bool = False


# ============================================================================
# Decoded inbound messages
# ============================================================================


@dataclass(frozen=True)
class IdLine:
    """'id name ...' / 'id author ...'"""

    key: str
    value: str


@dataclass(frozen=True)
class OptionLine:
    """An advertised engine option."""

    option: chess.engine.Option


@dataclass(frozen=True)
class HandshakeOk:
    """'ucciok' / 'uciok'"""

    token: str


@dataclass(frozen=True)
class ReadyOk:
    pass


@dataclass(frozen=True)
class InfoLine:
    """
    One 'info' line.

    `info` holds the search fields present on this line (partial record);
    `string` is free text from 'info string ...'.
    """

    info: Optional[SearchInfo] = None
    string: Optional[str] = None


@dataclass(frozen=True)
class BestMoveLine:
    best_move: BestMove


@dataclass(frozen=True)
class Bye:
    pass


@dataclass(frozen=True)
class Unrecognized:
    """Vendor diagnostics or anything else the codec does not know."""

    line: str = field(default="")
