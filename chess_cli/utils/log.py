"""
File-based logging for the engine core.

The terminal belongs to the front end, so diagnostics go to a log file.
Wire traffic is logged at DEBUG as '>>> command' / '<<< reply'.
"""

import logging
from pathlib import Path
from typing import Optional, Union

DEFAULT_LOG_DIR = Path.home() / ".chess-cli"


def setup_logger(
    debug: bool = False,
    log_file: Optional[Union[str, Path]] = None,
    name: str = "chess_cli",
) -> logging.Logger:
    """
    Setup file-based logger for engine debugging.

    Args:
        debug: If True, log at DEBUG level; otherwise INFO level
        log_file: Log file path (default: ~/.chess-cli/engine.log)
        name: Logger to configure; every chess_cli module logs below it

    Returns:
        Configured logger instance
    """
    if log_file is None:
        log_file = DEFAULT_LOG_DIR / "engine.log"
    log_file = Path(log_file)
    log_file.parent.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger(name)
    logger.setLevel(logging.DEBUG if debug else logging.INFO)

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    handler = logging.FileHandler(log_file, mode='w', encoding="utf-8")
    formatter = logging.Formatter(
        '%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        datefmt='%H:%M:%S'
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)

    return logger
