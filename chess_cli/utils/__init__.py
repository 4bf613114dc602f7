"""
Utilities Module

Key Components:
    - setup_logger: file-based logging for the engine core
    - testing: scripted UCCI/UCI engine double (FakeEngine) used by the
      test suite; run it with `python -m chess_cli.utils.testing`
"""

from chess_cli.utils.log import setup_logger

__all__ = [
    'setup_logger',
]
