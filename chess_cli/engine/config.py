"""
Engine configuration.

One EngineConfig per engine entry of the user's engines.toml. Locating and
reading that file is the front end's job; it hands the parsed table to
EngineConfig.from_dict and the result is read once when a session is
created.

Example table:

    [pikafish]
    name = "pikafish"
    protocol = "uci"
    path = "$HOME/engines/pikafish/pikafish"
    working_directory = "$HOME/engines/pikafish"
    options = { Threads = 4, Hash = 256 }
    default_search = { movetime = 3000 }
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Tuple

from chess_cli.engine.supervisor import STDERR_MODES
from chess_cli.protocol.messages import DIALECTS, Dialect, SearchParameters, get_dialect


@dataclass
class EngineConfig:
    """Configuration for one engine executable."""

    name: str
    """Display name, also used for the engine handle"""

    path: str
    """Engine executable; '~' and $VARS are expanded at spawn time"""

    protocol: str = "ucci"
    """Protocol dialect: 'ucci' or 'uci'"""

    working_directory: Optional[str] = None
    """Directory with the engine's weight/data files (default: inherit)"""

    args: Tuple[str, ...] = ()
    """Extra command-line arguments for the executable"""

    options: Dict[str, Any] = field(default_factory=dict)
    """Option overrides sent after the handshake, forwarded verbatim"""

    default_search: SearchParameters = field(default_factory=SearchParameters)
    """Search limits used when a search is started without parameters"""

    handshake_timeout: float = 10.0
    """Seconds allowed for the identify/ready handshake"""

    grace_timeout: float = 2.0
    """Seconds allowed for quit and stop before the process is killed"""

    stderr: str = "discard"
    """Engine stderr handling: 'discard' or 'log'"""

    def __post_init__(self):
        """Validate configuration after initialization."""
        if not self.name:
            raise ValueError("engine name must not be empty")

        if not self.path:
            raise ValueError(f"engine '{self.name}' has an empty path")

        if self.protocol.lower() not in DIALECTS:
            raise ValueError(
                f"engine '{self.name}': unknown protocol '{self.protocol}', "
                f"expected one of {sorted(DIALECTS)}"
            )
        self.protocol = self.protocol.lower()

        self.args = tuple(str(a) for a in self.args)
        self.options = dict(self.options)

        if isinstance(self.default_search, Mapping):
            self.default_search = SearchParameters(**self.default_search)

        if self.handshake_timeout <= 0:
            raise ValueError(f"handshake_timeout must be positive, got {self.handshake_timeout}")

        if self.grace_timeout < 0:
            raise ValueError(f"grace_timeout must not be negative, got {self.grace_timeout}")

        if self.stderr not in STDERR_MODES:
            raise ValueError(f"stderr must be one of {STDERR_MODES}, got {self.stderr!r}")

    @property
    def dialect(self) -> Dialect:
        return get_dialect(self.protocol)

    @classmethod
    def from_dict(cls, table: Mapping[str, Any], name: Optional[str] = None) -> "EngineConfig":
        """
        Build a config from an already-parsed table (e.g. one TOML section).

        Args:
            table: Mapping with at least 'path' and 'name' (or the name argument)
            name: Fallback name, typically the table's key

        Raises:
            ValueError: On missing fields, unknown keys or invalid values
        """
        data = dict(table)
        if "name" not in data:
            if name is None:
                raise ValueError("engine config is missing the 'name' field")
            data["name"] = name
        if "path" not in data:
            raise ValueError(f"engine '{data['name']}' config is missing the 'path' field")

        known = set(cls.__dataclass_fields__)
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError(f"engine '{data['name']}' config has unknown keys: {unknown}")

        return cls(**data)

    def __repr__(self) -> str:
        """String representation of config."""
        return (
            f"EngineConfig(\n"
            f"  Engine: {self.name} ({self.protocol})\n"
            f"  Path: {self.path}\n"
            f"  Working directory: {self.working_directory or '.'}\n"
            f"  Options: {self.options}\n"
            f"  Default search: {self.default_search}\n"
            f")"
        )
