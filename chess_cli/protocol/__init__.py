"""
Protocol Module

Value types and the stateless codec for the UCI-family protocols spoken by
Chinese-chess engines (UCCI and UCI).

Key Components:
    - Position, SearchParameters: what a search is asked to do
    - SearchInfo, BestMove: what an engine reports back
    - decode_line: inbound text -> closed set of message values
    - encode_*: outbound values -> command lines, validated for line breaks
    - Dialect table: the few tokens where UCCI and UCI differ
"""

from chess_cli.protocol.messages import (
    Dialect,
    DIALECTS,
    UCCI,
    UCI,
    get_dialect,
    Position,
    SearchParameters,
    SearchInfo,
    BestMove,
    IdLine,
    OptionLine,
    HandshakeOk,
    ReadyOk,
    InfoLine,
    BestMoveLine,
    Bye,
    Unrecognized,
)
from chess_cli.protocol.codec import (
    check_text,
    check_token,
    decode_line,
    decode_go,
    decode_position,
    decode_setoption,
    encode_go,
    encode_identify,
    encode_isready,
    encode_newgame,
    encode_position,
    encode_quit,
    encode_setoption,
    encode_stop,
)

__all__ = [
    "Dialect",
    "DIALECTS",
    "UCCI",
    "UCI",
    "get_dialect",
    "Position",
    "SearchParameters",
    "SearchInfo",
    "BestMove",
    "IdLine",
    "OptionLine",
    "HandshakeOk",
    "ReadyOk",
    "InfoLine",
    "BestMoveLine",
    "Bye",
    "Unrecognized",
    "check_text",
    "check_token",
    "decode_line",
    "decode_go",
    "decode_position",
    "decode_setoption",
    "encode_go",
    "encode_identify",
    "encode_isready",
    "encode_newgame",
    "encode_position",
    "encode_quit",
    "encode_setoption",
    "encode_stop",
]
