"""
Protocol Codec

Pure functions translating between structured values and protocol text.
One message per line; tokens are separated by whitespace; the first token
names the command or event.

Outbound (GUI -> engine):
    ucci | uci                         identify, start of handshake
    isready                            readiness check -> readyok
    setoption <name> <value>           UCCI
    setoption name <name> value <v>    UCI
    position startpos|fen <fen> [moves m1 m2 ...]
    go [depth N | nodes N | infinite | time T movestogo 1 | movetime T]
    stop
    quit

Inbound (engine -> GUI):
    id name|author ...
    option ...
    ucciok | uciok
    readyok
    info [depth N] [score cp N | score mate N | score N] [pv ...] ...
    bestmove <move> [ponder <move>] [draw | resign]
    nobestmove
    bye

Decoding never raises for lines it does not recognise; they come back as
Unrecognized. A recognised line that is malformed raises MalformedMessage
and the session decides whether that is fatal in its current state.

References:
    - UCCI: https://www.xqbase.com/protocol/cchess_ucci.htm
    - UCI: https://www.chessprogramming.org/UCI
"""

from typing import Any, List, Optional, Sequence

import chess.engine

from chess_cli.errors import InvalidCommandError, MalformedMessage
from chess_cli.protocol.messages import (
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
    UCI,
)

LINE_BREAKS = ("\n", "\r", "\x0b", "\x0c", "\x1c", "\x1d", "\x1e", "\x85", "\u2028", "\u2029")

# Integer-valued info keys and the SearchInfo field each one fills.
INFO_INT_FIELDS = {
    "depth": "depth",
    "seldepth": "seldepth",
    "multipv": "multipv",
    "nodes": "nodes",
    "nps": "nps",
    "time": "time",
    "hashfull": "hashfull",
}

# Keys that carry one value we do not keep.
INFO_SKIPPED_KEYS = ("tbhits", "currmovenumber", "cpuload", "sbhits", "refutation", "currline")

OPTION_KEYWORDS = ("type", "default", "min", "max", "var")


# ============================================================================
# Validation
# ============================================================================


def check_text(text: str, what: str = "text") -> str:
    """
    Reject text that would split a command across lines.

    Any character str.splitlines() treats as a boundary is refused.

    Raises:
        InvalidCommandError: If text is not a str or contains a line break
    """
    if not isinstance(text, str):
        raise InvalidCommandError(f"{what} must be a string, got {type(text).__name__}")
    for ch in LINE_BREAKS:
        if ch in text:
            raise InvalidCommandError(f"{what} contains a line break: {text!r}")
    return text


def check_token(token: str, what: str = "token") -> str:
    """Like check_text, but the value must also be a single non-empty token."""
    check_text(token, what)
    if not token or token.split() != [token]:
        raise InvalidCommandError(f"{what} must be a single token, got {token!r}")
    return token


# ============================================================================
# Encoding
# ============================================================================


def encode_identify(dialect: Dialect) -> str:
    return dialect.identify


def encode_isready() -> str:
    return "isready"


def encode_newgame(dialect: Dialect) -> Optional[str]:
    return dialect.newgame


def encode_stop() -> str:
    return "stop"


def encode_quit() -> str:
    return "quit"


def encode_position(position: Position) -> str:
    """
    Serialize a position command.

    Examples:
        position startpos
        position startpos moves h2e2 h9g7
        position fen rnbakabnr/9/1c5c1/p1p1p1p1p/9/9/P1P1P1P1P/1C5C1/9/RNBAKABNR w - - 0 1
    """
    if position.is_startpos:
        parts = ["position", "startpos"]
    else:
        fen = check_text(position.fen, "FEN").strip()
        if not fen:
            raise InvalidCommandError("FEN must not be empty")
        if "moves" in fen.split():
            raise InvalidCommandError(f"FEN must not contain 'moves': {fen!r}")
        parts = ["position", "fen", fen]

    if position.moves:
        parts.append("moves")
        parts.extend(check_token(move, "move") for move in position.moves)

    return " ".join(parts)


def encode_go(params: SearchParameters, dialect: Dialect = UCI) -> str:
    """
    Serialize a go command for the given dialect.

    Examples:
        go depth 12
        go nodes 500000
        go infinite
        go movetime 1000              (UCI)
        go time 1000 movestogo 1      (UCCI)
    """
    strategy = params.strategy
    if strategy is None:
        return "go"
    if strategy == "infinite":
        return "go infinite"
    if strategy == "movetime":
        tokens = [t.format(ms=params.movetime) for t in dialect.movetime_tokens]
        return "go " + " ".join(tokens)
    return f"go {strategy} {getattr(params, strategy)}"


def format_option_value(value: Any) -> str:
    """Render an option value the way engines expect (booleans as true/false)."""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def encode_setoption(name: str, value: Any = None, dialect: Dialect = UCI) -> str:
    """
    Serialize an option override. A value of None sends a button press.

    Examples:
        setoption name Threads value 4     (UCI)
        setoption hashsize 64              (UCCI)
    """
    check_text(name, "option name")
    if not name.strip():
        raise InvalidCommandError("option name must not be empty")

    rendered = None
    if value is not None:
        rendered = check_text(format_option_value(value), "option value")

    if dialect.keyword_setoption:
        if "value" in name.split():
            raise InvalidCommandError(f"option name must not contain 'value': {name!r}")
        line = f"setoption name {name}"
        if rendered is not None:
            line += f" value {rendered}"
        return line

    check_token(name, "option name")
    if rendered is None:
        return f"setoption {name}"
    return f"setoption {name} {rendered}"


# ============================================================================
# Decoding
# ============================================================================


def _int(kind: str, line: str, tokens: Sequence[str], index: int, key: str) -> int:
    if index >= len(tokens):
        raise MalformedMessage(kind, line, f"'{key}' without a value")
    try:
        return int(tokens[index])
    except ValueError:
        raise MalformedMessage(
            kind, line, f"'{key}' expects an integer, got {tokens[index]!r}"
        ) from None


def decode_line(line: str):
    """
    Decode one inbound line into a message value.

    Returns:
        IdLine, OptionLine, HandshakeOk, ReadyOk, InfoLine, BestMoveLine,
        Bye or Unrecognized

    Raises:
        MalformedMessage: If a recognised message has the wrong shape
    """
    tokens = line.split()
    if not tokens:
        return Unrecognized(line)

    kind = tokens[0]

    if kind in ("ucciok", "uciok"):
        return HandshakeOk(kind)
    if kind == "readyok":
        return ReadyOk()
    if kind == "bye":
        return Bye()
    if kind == "id":
        return _decode_id(line, tokens)
    if kind == "option":
        return OptionLine(_decode_option(line, tokens))
    if kind == "info":
        return _decode_info(line, tokens)
    if kind == "bestmove":
        return BestMoveLine(_decode_bestmove(line, tokens))
    if kind == "nobestmove":
        return BestMoveLine(BestMove(None))

    return Unrecognized(line)


def _decode_id(line: str, tokens: List[str]) -> IdLine:
    if len(tokens) < 2:
        raise MalformedMessage("id", line, "missing key")
    value = line.split(None, 2)[2].strip() if len(tokens) > 2 else ""
    return IdLine(tokens[1], value)


def _decode_option(line: str, tokens: List[str]) -> chess.engine.Option:
    """
    Parse an option advertisement.

    Formats:
        option name Hash type spin default 16 min 1 max 1024         (UCI)
        option hashsize type spin min 0 max 1024 default 16          (UCCI)
        option style type combo var solid var normal default normal
        option usebook type check default true
    """
    if len(tokens) < 2:
        raise MalformedMessage("option", line, "missing name")

    if "type" not in tokens:
        raise MalformedMessage("option", line, "missing 'type'")
    type_index = tokens.index("type")

    start = 2 if tokens[1] == "name" else 1
    name = " ".join(tokens[start:type_index])
    if not name:
        raise MalformedMessage("option", line, "missing name")

    # Group the remaining tokens under the keyword that precedes them.
    values = {}
    var = []
    key = None
    for token in tokens[type_index:]:
        if token in OPTION_KEYWORDS:
            key = token
            if key == "var":
                var.append([])
            else:
                values[key] = []
            continue
        if key == "var":
            var[-1].append(token)
        elif key is not None:
            values[key].append(token)

    option_type = " ".join(values.get("type", []))
    if not option_type:
        raise MalformedMessage("option", line, "empty 'type'")

    default = " ".join(values["default"]) if "default" in values else None
    if default == "<empty>":
        default = ""

    minimum = maximum = None
    if option_type == "spin":
        try:
            if default is not None:
                default = int(default)
            if "min" in values:
                minimum = int(" ".join(values["min"]))
            if "max" in values:
                maximum = int(" ".join(values["max"]))
        except ValueError as e:
            raise MalformedMessage("option", line, f"non-integer spin bound: {e}") from None
    elif option_type == "check" and default is not None:
        default = default.lower() == "true"

    return chess.engine.Option(
        name=name,
        type=option_type,
        default=default,
        min=minimum,
        max=maximum,
        var=[" ".join(v) for v in var] if var else None,
    )


def _decode_info(line: str, tokens: List[str]) -> InfoLine:
    fields = {}
    string = None

    i = 1
    while i < len(tokens):
        key = tokens[i]

        if key in INFO_INT_FIELDS:
            fields[INFO_INT_FIELDS[key]] = _int("info", line, tokens, i + 1, key)
            i += 2
        elif key == "score":
            i = _decode_score(line, tokens, i + 1, fields)
        elif key == "pv":
            fields["pv"] = tuple(tokens[i + 1:])
            break
        elif key == "string":
            string = line.split("string", 1)[1].strip()
            break
        elif key == "currmove":
            if i + 1 >= len(tokens):
                raise MalformedMessage("info", line, "'currmove' without a move")
            fields["currmove"] = tokens[i + 1]
            i += 2
        elif key in INFO_SKIPPED_KEYS:
            i += 2
        else:
            i += 1

    info = SearchInfo(**fields) if fields else None
    return InfoLine(info=info, string=string)


def _decode_score(line: str, tokens: List[str], i: int, fields: dict) -> int:
    """Parse a score starting at tokens[i]; returns the index after it."""
    if i >= len(tokens):
        raise MalformedMessage("info", line, "'score' without a value")

    unit = tokens[i]
    if unit == "cp":
        fields["score"] = chess.engine.Cp(_int("info", line, tokens, i + 1, "score cp"))
        i += 2
    elif unit == "mate":
        fields["score"] = chess.engine.Mate(_int("info", line, tokens, i + 1, "score mate"))
        i += 2
    else:
        # UCCI reports a bare centipawn value.
        fields["score"] = chess.engine.Cp(_int("info", line, tokens, i, "score"))
        i += 1

    if i < len(tokens) and tokens[i] in ("lowerbound", "upperbound"):
        fields["score_bound"] = tokens[i]
        i += 1
    return i


def _decode_bestmove(line: str, tokens: List[str]) -> BestMove:
    if len(tokens) < 2:
        raise MalformedMessage("bestmove", line, "missing move")

    move = tokens[1]
    if move in ("(none)", "0000"):
        move = None

    ponder = None
    draw_offer = resign = False
    i = 2
    while i < len(tokens):
        if tokens[i] == "ponder":
            if i + 1 >= len(tokens):
                raise MalformedMessage("bestmove", line, "'ponder' without a move")
            ponder = tokens[i + 1]
            i += 2
            continue
        if tokens[i] == "draw":
            draw_offer = True
        elif tokens[i] == "resign":
            resign = True
        i += 1

    return BestMove(move, ponder=ponder, draw_offer=draw_offer, resign=resign)


# ============================================================================
# Reference decoders for outbound commands
#
# Used by the scripted engine double and by tests to check that what we
# send is what an engine would read.
# ============================================================================


def decode_position(line: str) -> Position:
    """
    Parse a 'position' command.

    Raises:
        MalformedMessage: If the command is not a well-formed position
    """
    tokens = line.split()
    if len(tokens) < 2 or tokens[0] != "position":
        raise MalformedMessage("position", line, "not a position command")

    if "moves" in tokens:
        moves_index = tokens.index("moves")
        moves = tuple(tokens[moves_index + 1:])
    else:
        moves_index = len(tokens)
        moves = ()

    if tokens[1] == "startpos":
        return Position.startpos(moves)
    if tokens[1] == "fen":
        fen = " ".join(tokens[2:moves_index])
        if not fen:
            raise MalformedMessage("position", line, "empty FEN")
        return Position.from_fen(fen, moves)

    raise MalformedMessage("position", line, f"unknown position type {tokens[1]!r}")


def decode_go(line: str, dialect: Dialect = UCI) -> SearchParameters:
    """
    Parse a 'go' command back into SearchParameters.

    Raises:
        MalformedMessage: On non-numeric limits or conflicting strategies
    """
    tokens = line.split()
    if not tokens or tokens[0] != "go":
        raise MalformedMessage("go", line, "not a go command")

    limits = {}
    movestogo = None
    time_budget = None

    i = 1
    while i < len(tokens):
        key = tokens[i]
        if key in ("depth", "nodes", "movetime"):
            limits[key] = _int("go", line, tokens, i + 1, key)
            i += 2
        elif key == "time":
            time_budget = _int("go", line, tokens, i + 1, key)
            i += 2
        elif key == "movestogo":
            movestogo = _int("go", line, tokens, i + 1, key)
            i += 2
        elif key == "infinite":
            limits["infinite"] = True
            i += 1
        else:
            i += 1

    if time_budget is not None:
        if dialect.movetime_tokens[0] == "time" and movestogo == 1:
            limits["movetime"] = time_budget
        else:
            raise MalformedMessage("go", line, "clock-based time control is not supported")

    try:
        return SearchParameters(**limits)
    except ValueError as e:
        raise MalformedMessage("go", line, str(e)) from None


def decode_setoption(line: str, dialect: Dialect = UCI):
    """
    Parse a 'setoption' command into (name, value).

    value is None for a button press.
    """
    tokens = line.split()
    if len(tokens) < 2 or tokens[0] != "setoption":
        raise MalformedMessage("setoption", line, "not a setoption command")

    if dialect.keyword_setoption:
        if tokens[1] != "name":
            raise MalformedMessage("setoption", line, "missing 'name'")
        if "value" in tokens:
            value_index = tokens.index("value")
            return " ".join(tokens[2:value_index]), " ".join(tokens[value_index + 1:])
        return " ".join(tokens[2:]), None

    value = " ".join(tokens[2:]) if len(tokens) > 2 else None
    return tokens[1], value
