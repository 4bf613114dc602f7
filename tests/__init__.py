"""
Unit Tests for chess-cli

This package contains unit tests for the engine communication core.

Running Tests:
    # Run all tests
    pytest tests/

    # Run specific test file
    pytest tests/test_protocol.py

    # Run with coverage
    pytest tests/ --cov=chess_cli --cov-report=html

    # Run specific test
    pytest tests/test_session.py::TestSearch::test_stop_yields_bestmove

Session, registry and supervisor tests start real subprocesses running
the scripted engine in chess_cli.utils.testing; no engine binary is needed.

Dependencies:
    - pytest: Test framework
    - pytest-cov: Coverage reporting
"""
