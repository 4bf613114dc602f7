"""
chess-cli Engine Core

Drives external Chinese-chess engines (UCCI or UCI) from a terminal front
end: starts engine processes, sets up positions, runs searches and streams
principal variations and best moves back as they arrive.

## Architecture

1. **protocol**: Wire format
   - Position, SearchParameters, SearchInfo, BestMove values
   - Stateless codec: command encoding (line-break safe) and line decoding
   - UCCI / UCI dialect table

2. **engine**: Engine communication core
   - Process supervisor: spawn, exit watcher, quit-then-kill shutdown
   - Line channel: threaded stdin/stdout line streams
   - Engine session: protocol state machine and event stream
   - Session registry: several engines side by side, one event stream

3. **utils**: Logging setup and a scripted engine double for tests

The board, move rules and evaluation all live in the external engine; the
core treats moves and FEN strings as opaque text.

## Quick Start

```python
from chess_cli.engine import EngineConfig, SessionRegistry, StartSearch, BestMoveFound
from chess_cli.protocol import Position, SearchParameters

config = EngineConfig(name="pikafish", path="/opt/pikafish/pikafish", protocol="uci")

with SessionRegistry() as registry:
    handle = registry.create(config)
    registry.command(handle, StartSearch(Position.startpos(), SearchParameters(movetime=1000)))
    for source, event in registry.events():
        print(source, event)
        if isinstance(event, BestMoveFound):
            break
```

## Version

0.1.0
"""

__version__ = "0.1.0"
__license__ = "MIT"

__all__ = ["__version__"]
